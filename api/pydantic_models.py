from pydantic import BaseModel, Field, EmailStr, StringConstraints
from typing import Annotated, List, Optional

from leaderboard import LeaderboardEntry
from models import Item, Post, UserProfile


# --- AUTH ---
class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=80)


class SessionResponse(BaseModel):
    uid: str
    email: str
    name: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=80)]


# --- ITEMS ---
class ItemListResponse(BaseModel):
    items: List[Item]


class VerificationResponse(BaseModel):
    itemId: str
    success: bool
    reason: Optional[str] = None
    pointsAwarded: int = 0


# --- LEADERBOARD ---
class LeaderboardResponse(BaseModel):
    leaderboard: List[LeaderboardEntry]
    myRank: Optional[int] = None


class RankResponse(BaseModel):
    uid: str
    rank: Optional[int] = None


# --- COMMUNITY ---
class CreatePostRequest(BaseModel):
    content: str = Field(default="", max_length=2000)


class PostListResponse(BaseModel):
    posts: List[Post]


class ProfileResponse(BaseModel):
    user: UserProfile
    rank: Optional[int] = None
