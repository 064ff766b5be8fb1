"""
Database Schemas for PetMarket

Each Pydantic model maps to a MongoDB collection (lowercased class name + "s").
Use these for validation and to keep collections consistent.
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

# Notifications are embedded in the owning user document, never stored alone
class Notification(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    fromid: Optional[str] = Field(None, description="Sender user id")
    petId: Optional[str] = Field(None, description="Related pet id")
    isRead: bool = Field(False)
    createdAt: Optional[datetime] = None

# Accounts: buyers, sellers and admins share one collection
class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="bcrypt hash of password")
    is_admin: bool = Field(True, description="Every account can open the admin console")
    notifications: List[Notification] = Field(default_factory=list)

# Pets offered for sale or adoption
class Pet(BaseModel):
    name: str = Field(..., max_length=140)
    breed: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(0, ge=0)
    listingType: Literal['Sale', 'Adoption'] = Field('Sale')
    ownerId: str = Field(..., description="Owner user id")

class ChatMessage(BaseModel):
    sender: str
    text: str = Field(..., max_length=5000)
    createdAt: Optional[datetime] = None

# One thread per buyer/seller/pet
class Chat(BaseModel):
    buyerId: str
    sellerId: str
    petId: str
    memberIds: List[str] = Field(default_factory=list)
    messages: List[ChatMessage] = Field(default_factory=list)

class Group(BaseModel):
    name: str = Field(..., max_length=140)

# Group messages reference their group by ObjectId (stored, not validated here)
class Message(BaseModel):
    sender: str
    text: str = Field(..., max_length=5000)
