import datetime
import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from exceptions import MalformedDocumentError

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Classification(str, Enum):
    RECYCLABLE = "Recyclable"
    E_WASTE = "E-Waste"
    WASTE = "Waste"


_CLASSIFICATION_ALIASES = {
    "recyclable": Classification.RECYCLABLE,
    "e-waste": Classification.E_WASTE,
    "ewaste": Classification.E_WASTE,
    "e waste": Classification.E_WASTE,
    "waste": Classification.WASTE,
}

# Points awarded on a successful verification, keyed by classification.
POINTS_BY_CLASSIFICATION = {
    Classification.E_WASTE: 50,
    Classification.RECYCLABLE: 20,
    Classification.WASTE: 5,
}
DEFAULT_POINTS = 5


def normalize_classification(value) -> Classification:
    """Maps any free-text label onto one of the three classifications. Unknown labels are Waste."""
    if isinstance(value, Classification):
        return value
    if not isinstance(value, str):
        return Classification.WASTE
    return _CLASSIFICATION_ALIASES.get(value.strip().lower(), Classification.WASTE)


def points_for(classification) -> int:
    if classification is None:
        return DEFAULT_POINTS
    return POINTS_BY_CLASSIFICATION.get(normalize_classification(classification), DEFAULT_POINTS)


class UserProfile(BaseModel):
    uid: str
    name: str = "Anonymous"
    email: str = ""
    points: int = 0
    itemsUploaded: int = 0
    items: List[str] = []
    rank: Optional[int] = None
    createdAt: datetime.datetime = Field(default_factory=utcnow)
    updatedAt: datetime.datetime = Field(default_factory=utcnow)

    @field_validator('name', mode='before')
    @classmethod
    def _default_name(cls, value):
        return value if isinstance(value, str) and value else "Anonymous"

    @field_validator('email', mode='before')
    @classmethod
    def _default_email(cls, value):
        return value if isinstance(value, str) else ""

    @field_validator('points', 'itemsUploaded', mode='before')
    @classmethod
    def _default_counter(cls, value):
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0

    @field_validator('items', mode='before')
    @classmethod
    def _default_items(cls, value):
        return value if isinstance(value, list) else []


class Item(BaseModel):
    id: str
    userId: str
    imageUrl: str = ""
    description: Optional[str] = None
    classification: Optional[Classification] = None
    recyclabilityScore: int = 0
    resaleValue: float = 0.0
    disposalInstructions: str = ""
    isVerified: bool = False
    verificationVideoUrl: Optional[str] = None
    pointsAwarded: int = 0
    createdAt: datetime.datetime = Field(default_factory=utcnow)
    updatedAt: datetime.datetime = Field(default_factory=utcnow)

    @field_validator('classification', mode='before')
    @classmethod
    def _normalize_classification(cls, value):
        # Older documents stored lowercase labels such as 'e-waste'.
        if value is None or value == "":
            return None
        return normalize_classification(value)

    @field_validator('imageUrl', 'disposalInstructions', mode='before')
    @classmethod
    def _default_text(cls, value):
        return value if isinstance(value, str) else ""

    @field_validator('isVerified', mode='before')
    @classmethod
    def _default_flag(cls, value):
        return bool(value)

    @field_validator('recyclabilityScore', 'pointsAwarded', mode='before')
    @classmethod
    def _default_int(cls, value):
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0

    @field_validator('resaleValue', mode='before')
    @classmethod
    def _default_float(cls, value):
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0.0


class Post(BaseModel):
    id: str
    userId: str
    username: str
    content: str = ""
    imageUrl: Optional[str] = None
    timestamp: datetime.datetime
    likes: int = 0
    dislikes: int = 0
    likedBy: List[str] = []
    dislikedBy: List[str] = []

    @field_validator('likes', 'dislikes', mode='before')
    @classmethod
    def _default_count(cls, value):
        return value if isinstance(value, int) else 0

    @field_validator('likedBy', 'dislikedBy', mode='before')
    @classmethod
    def _default_voters(cls, value):
        return value if isinstance(value, list) else []

    @field_validator('imageUrl', mode='before')
    @classmethod
    def _optional_image(cls, value):
        return value if isinstance(value, str) else None


def from_snapshot(model, snapshot, id_field='id'):
    """
    Validates a Firestore snapshot into `model`. The document id always wins over
    whatever id field is stored inside the document.
    """
    data = snapshot.to_dict() or {}
    data[id_field] = snapshot.id
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedDocumentError(
            f"{model.__name__} document {snapshot.id} is malformed",
            details={"errors": e.errors(include_url=False)},
        ) from e


def validate_many(model, snapshots, id_field='id'):
    """List-read counterpart of from_snapshot: malformed documents are skipped and logged."""
    results = []
    for snapshot in snapshots:
        try:
            results.append(from_snapshot(model, snapshot, id_field))
        except MalformedDocumentError as e:
            logger.warning(f"Skipping malformed document: {e.message} - {e.details}")
    return results
