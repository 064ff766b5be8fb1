import logging
import os
from typing import Any, List, Optional

import bcrypt
from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import create_document, get_db, get_documents, now
from schemas import (
    Chat as ChatSchema,
    ChatMessage as ChatMessageSchema,
    Group as GroupSchema,
    Message as MessageSchema,
    Notification as NotificationSchema,
    Pet as PetSchema,
    User as UserSchema,
)

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 7

app = FastAPI(title="PetMarket API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error responses all share the {"message": ...} shape
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "") if errors else ""
    return JSONResponse({"message": f"Invalid input. {detail}".strip()}, status_code=400)


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse({"message": "Something went wrong."}, status_code=500)


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"message": "Something went wrong."}, status_code=500)


# Utils
def hash_password(password: str) -> str:
    # bcrypt only uses the first 72 bytes
    return bcrypt.hashpw(password.encode()[:72], bcrypt.gensalt(BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode()[:72], hashed.encode())
    except ValueError:
        return False


def object_id(value: str, what: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {what} ID format.")
    return ObjectId(value)


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly: ``_id`` becomes ``id`` and ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            out["id" if k == "_id" else k] = serialize(v)
        return out
    return value


@app.get("/")
def read_root():
    return {"message": "PetMarket backend running"}


# Auth Endpoints
class SignupBody(BaseModel):
    email: str
    password: str
    name: str


class LoginBody(BaseModel):
    email: str
    password: str


@app.post("/api/auth/signup", status_code=201)
def signup(body: SignupBody, db: Database = Depends(get_db)):
    if "@" not in body.email or len(body.password.strip()) < MIN_PASSWORD_LENGTH or not body.name.strip():
        raise HTTPException(
            status_code=400,
            detail="Invalid input. Password should be at least 7 characters long, and all fields are required.",
        )

    # check existing
    if db.users.find_one({"email": body.email}):
        raise HTTPException(status_code=409, detail="User with this email already exists!")

    user = UserSchema(
        name=body.name,
        email=body.email,
        password=hash_password(body.password),
        is_admin=True,
    )
    user_id = create_document(db, "users", user)
    logger.info("Created user %s", user_id)
    return {"message": "User created successfully!", "userId": user_id}


@app.post("/api/auth/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    if "@" not in body.email or not body.password:
        raise HTTPException(status_code=400, detail="Invalid input. Email and password are required.")

    # same answer for unknown email and wrong password
    user = db.users.find_one({"email": body.email})
    if not user or not verify_password(body.password, user.get("password", "")):
        logger.warning("Failed login for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return {
        "message": "Login successful!",
        "user": {
            "id": str(user["_id"]),
            "email": user["email"],
            "name": user["name"],
            "is_admin": user.get("is_admin", False),
        },
    }


# Users (admin console)
class UpdateUserBody(BaseModel):
    name: str
    email: str


@app.get("/api/users")
def list_users(db: Database = Depends(get_db)):
    docs = db.users.find({}, {"_id": 1, "name": 1, "email": 1})
    return [{"id": str(d["_id"]), "name": d.get("name"), "email": d.get("email")} for d in docs]


@app.get("/api/users/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    oid = object_id(user_id, "user")
    user = db.users.find_one({"_id": oid}, {"name": 1, "email": 1, "_id": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")

    pets = get_documents(db, "pets", {"ownerId": user_id})
    return {**user, "pets": serialize(pets)}


@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: UpdateUserBody, db: Database = Depends(get_db)):
    oid = object_id(user_id, "user")
    if not body.name.strip() or "@" not in body.email:
        raise HTTPException(status_code=400, detail="Name and email are required.")

    # emails stay unique across accounts
    if db.users.find_one({"email": body.email, "_id": {"$ne": oid}}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="User with this email already exists!")

    updated = db.users.find_one_and_update(
        {"_id": oid},
        {"$set": {"name": body.name, "email": body.email}},
        projection={"_id": 1, "name": 1, "email": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="User not found.")
    return serialize(updated)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db)):
    oid = object_id(user_id, "user")
    # pets, chats and sent notifications are left in place
    res = db.users.delete_one({"_id": oid})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found.")
    logger.info("Deleted user %s", user_id)
    return {"message": "User deleted successfully."}


# Notifications
class NotificationBody(BaseModel):
    message: str = Field(..., max_length=2000)
    fromid: Optional[str] = Field(None, validation_alias=AliasChoices("fromid", "fromUserId"))
    petId: Optional[str] = None


def append_notification(db: Database, seller_id: str, message: str, from_id: Optional[str], pet_id: Optional[str]) -> dict:
    """Push a new unread notification onto the seller's document.

    The append is a single ``$push``, so concurrent relays never overwrite
    each other. Raises a 404 when the seller does not exist.
    """
    oid = object_id(seller_id, "user")
    notification = NotificationSchema(message=message, fromid=from_id, petId=pet_id, isRead=False, createdAt=now())
    doc = {"_id": ObjectId(), **notification.model_dump()}

    res = db.users.update_one({"_id": oid}, {"$push": {"notifications": doc}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found.")
    logger.info("Notification relayed to user %s about pet %s", seller_id, pet_id)
    return doc


def list_notifications(db: Database, user_id: str) -> List[dict]:
    oid = object_id(user_id, "user")
    user = db.users.find_one({"_id": oid}, {"notifications": 1, "_id": 0})
    if user is None:
        raise HTTPException(status_code=404, detail="User not found.")
    return user.get("notifications") or []


@app.post("/api/users/{user_id}/notifications")
def post_notification(user_id: str, body: NotificationBody, db: Database = Depends(get_db)):
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Notification message is required.")
    doc = append_notification(db, user_id, body.message, body.fromid, body.petId)
    return {"success": True, "notification": serialize(doc)}


@app.get("/api/users/{user_id}/notifications")
def get_notifications(user_id: str, db: Database = Depends(get_db)):
    return serialize(list_notifications(db, user_id))


# Pets
class CreatePetBody(BaseModel):
    name: str = Field(..., max_length=140)
    breed: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(0, ge=0)
    listingType: str = "Sale"
    ownerId: str


@app.get("/api/pets")
def list_pets(ownerId: Optional[str] = None, limit: Optional[int] = Query(None, ge=1, le=100), db: Database = Depends(get_db)):
    filter_q = {}
    if ownerId:
        filter_q["ownerId"] = ownerId
    return serialize(get_documents(db, "pets", filter_q, limit))


@app.post("/api/pets", status_code=201)
def create_pet(body: CreatePetBody, db: Database = Depends(get_db)):
    # ensure owner exists
    owner_oid = object_id(body.ownerId, "owner")
    if not db.users.find_one({"_id": owner_oid}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Owner not found.")

    pet = PetSchema(
        name=body.name,
        breed=body.breed,
        image=body.image,
        price=body.price,
        listingType=body.listingType if body.listingType in ["Sale", "Adoption"] else "Sale",
        ownerId=body.ownerId,
    )
    pet_id = create_document(db, "pets", pet)
    return {"id": pet_id}


@app.get("/api/pets/{pet_id}")
def get_pet(pet_id: str, db: Database = Depends(get_db)):
    pet = db.pets.find_one({"_id": object_id(pet_id, "pet")})
    if not pet:
        raise HTTPException(status_code=404, detail="Pet not found.")
    return serialize(pet)


@app.delete("/api/pets/{pet_id}")
def delete_pet(pet_id: str, db: Database = Depends(get_db)):
    res = db.pets.delete_one({"_id": object_id(pet_id, "pet")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Pet not found.")
    return {"message": "Pet deleted successfully."}


# Chats
class CreateChatBody(BaseModel):
    buyerId: str
    sellerId: str
    petId: str


class ChatMessageBody(BaseModel):
    sender: str = "You"
    text: str = Field(..., max_length=5000)


@app.post("/api/chats")
def get_or_create_chat(body: CreateChatBody, db: Database = Depends(get_db)):
    if not (body.buyerId and body.sellerId and body.petId):
        raise HTTPException(status_code=400, detail="Missing required fields: buyerId, sellerId, and petId are required.")

    # Best effort: two concurrent creations can still both insert
    existing = db.chats.find_one({"buyerId": body.buyerId, "sellerId": body.sellerId, "petId": body.petId}, {"_id": 1})
    if existing:
        return JSONResponse({"chatId": str(existing["_id"])}, status_code=200)

    chat = ChatSchema(
        buyerId=body.buyerId,
        sellerId=body.sellerId,
        petId=body.petId,
        memberIds=[body.buyerId, body.sellerId],
        messages=[],
    )
    chat_id = create_document(db, "chats", chat)
    logger.info("Created chat %s for pet %s", chat_id, body.petId)
    return JSONResponse({"chatId": chat_id}, status_code=201)


@app.get("/api/chats")
def list_chats(userId: str, db: Database = Depends(get_db)):
    docs = db.chats.find({"memberIds": userId}).sort("createdAt", DESCENDING)
    return serialize(list(docs))


@app.get("/api/chats/{chat_id}")
def get_chat(chat_id: str, db: Database = Depends(get_db)):
    chat = db.chats.find_one({"_id": object_id(chat_id, "chat")})
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found.")
    return serialize(chat)


@app.post("/api/chats/{chat_id}")
def post_chat_message(chat_id: str, body: ChatMessageBody, db: Database = Depends(get_db)):
    oid = object_id(chat_id, "chat")
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="Message text is required.")

    msg = ChatMessageSchema(sender=body.sender, text=body.text, createdAt=now())
    res = db.chats.update_one({"_id": oid}, {"$push": {"messages": msg.model_dump()}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Chat not found.")
    return {"success": True, "message": msg.model_dump(mode="json")}


# Groups
class CreateGroupBody(BaseModel):
    name: str = Field(..., max_length=140)


class GroupMessageBody(BaseModel):
    sender: str
    text: str = Field(..., max_length=5000)


@app.post("/api/groups", status_code=201)
def create_group(body: CreateGroupBody, db: Database = Depends(get_db)):
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Group name is required.")
    group_id = create_document(db, "groups", GroupSchema(name=body.name))
    return {"groupId": group_id}


@app.post("/api/groups/{group_id}/messages", status_code=201)
def post_group_message(group_id: str, body: GroupMessageBody, db: Database = Depends(get_db)):
    oid = object_id(group_id, "group")
    if not db.groups.find_one({"_id": oid}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Group not found.")

    msg = MessageSchema(sender=body.sender, text=body.text)
    message_id = create_document(db, "messages", {**msg.model_dump(), "groupId": oid})
    return {"messageId": message_id}


@app.get("/api/groups/{group_id}")
def get_group(group_id: str, db: Database = Depends(get_db)):
    oid = object_id(group_id, "group")
    group = db.groups.find_one({"_id": oid})
    if not group:
        raise HTTPException(status_code=404, detail="Group not found.")

    messages = db.messages.find({"groupId": oid}).sort("createdAt", 1)
    return {"group": serialize(group), "messages": serialize(list(messages))}


@app.delete("/api/groups/{group_id}")
def delete_group(group_id: str, db: Database = Depends(get_db)):
    oid = object_id(group_id, "group")
    res = db.groups.delete_one({"_id": oid})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Group not found or already deleted.")

    # cascade
    db.messages.delete_many({"groupId": oid})
    return {"message": "Group and associated messages deleted successfully."}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
