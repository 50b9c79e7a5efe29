from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import Optional, List, Union

# --- Email-code Auth Schemas ---

class SignupRequest(BaseModel):
    """
    First step of email signup: a verification code is mailed to `email`.
    """
    email: EmailStr
    name: str = Field(min_length=1)
    marketingConsent: bool = False


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=1, description="The 6-digit code from the verification email.")
    name: str = ""
    marketingConsent: bool = False


class LoginRequest(BaseModel):
    email: EmailStr


class VerifyLoginRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    preferences: Optional[dict] = None
    marketingConsent: Optional[bool] = None


class ConsentUpdate(BaseModel):
    marketing: bool
    version: Optional[str] = None

# --- Password (session) Auth Schemas ---

class PasswordSignupRequest(BaseModel):
    email: EmailStr
    password: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class PasswordLoginRequest(BaseModel):
    email: EmailStr
    password: str


class PasswordChangeRequest(BaseModel):
    currentPassword: str
    newPassword: str


class NameUpdate(BaseModel):
    firstName: str = Field(min_length=1)
    lastName: Optional[str] = ""

# --- Practice Schemas ---

class AttemptSubmission(BaseModel):
    """
    Body of a practice submission. Absent fields leave stored values untouched.
    """
    timeTakenSeconds: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    # Older clients send extra bookkeeping fields; ignore them
    model_config = ConfigDict(extra='ignore')


class AttemptRecord(BaseModel):
    """
    Attempt with the question metadata the attempts browser filters on.
    """
    questionId: str = Field(min_length=1)
    timeTakenSeconds: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    questionName: Optional[str] = None
    parentTopic: Optional[str] = None
    relatedTopics: Optional[List[str]] = None
    difficulty: Optional[str] = None
    paper: Optional[str] = None
    year: Optional[str] = None
    questionType: Optional[str] = None


class NotesUpdate(BaseModel):
    notes: str


class FavouriteRequest(BaseModel):
    questionId: str = Field(min_length=1)
    questionName: Optional[str] = None
    parentTopic: Optional[str] = None
    difficulty: Optional[str] = None
    paper: Optional[str] = None
    year: Optional[str] = None
    questionType: Optional[str] = None


class TopicQuery(BaseModel):
    topics: Union[str, List[str]]

# --- Contact Schema ---

class ContactMessage(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    subject: str = Field(min_length=1, max_length=200)
    # Length is checked by the route so it can answer 413
    message: str = Field(min_length=1)
