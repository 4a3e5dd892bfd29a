"""Core data models for the ATS agent."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class PageType(str, Enum):
    MODAL = "modal"
    FORM = "form"
    FORM_MODAL = "form_modal"
    SIGNUP = "signup"
    INTERMEDIATE = "intermediate"
    CAPTCHA = "captcha"
    UNKNOWN = "unknown"


class FieldPurpose(str, Enum):
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    FULL_NAME = "full_name"
    EMAIL = "email"
    PHONE = "phone"
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    EXPERIENCE = "experience"
    LINKEDIN = "linkedin"
    WEBSITE = "website"
    PASSWORD = "password"
    CAPTCHA = "captcha"
    WORK_AUTH = "work_auth"
    SPONSORSHIP = "sponsorship"
    CLEARANCE = "clearance"
    EXPORT_CONTROLS = "export_controls"
    COUNTRY = "country"
    PREVIOUS_APPLICATION = "previous_application"
    PREVIOUS_EMPLOYMENT = "previous_employment"
    CONFLICT_OF_INTEREST = "conflict_of_interest"
    SUBMIT = "submit"
    APPLY = "apply"
    CLOSE = "close"
    SKIP = "skip"
    GUEST = "guest"
    UNKNOWN = "unknown"


ACTION_PURPOSES = frozenset(
    {
        FieldPurpose.SUBMIT,
        FieldPurpose.APPLY,
        FieldPurpose.CLOSE,
        FieldPurpose.SKIP,
        FieldPurpose.GUEST,
    }
)


class ElementKind(str, Enum):
    INPUT = "input"
    FILE = "file"
    CHECKBOX = "checkbox"
    BUTTON = "button"
    LINK = "link"
    SELECT = "select"


class NavigationReason(str, Enum):
    FORM_FOUND = "form_found"
    ACCOUNT_REQUIRED = "account_required"
    COMPLEX_CAPTCHA = "complex_captcha"
    MANUAL_INPUT_REQUIRED = "manual_input_required"
    MAX_ATTEMPTS = "max_attempts"
    UNKNOWN_PAGE = "unknown_page"


class DetectedField(BaseModel):
    """One element matched to a purpose. ``node_id`` is only valid for the snapshot it came from."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    element_kind: ElementKind
    purpose: FieldPurpose
    confidence: float
    selectors: Tuple[str, ...] = ()
    tag: str = ""
    text: str = ""
    href: Optional[str] = None

    @property
    def is_action(self) -> bool:
        return self.purpose in ACTION_PURPOSES


class PageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_overlay: bool = False
    has_password_field: bool = False
    has_file_upload: bool = False
    has_multiple_inputs: bool = False
    form_count: int = 0
    overlay_count: int = 0


class PageClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PageType
    confidence: float
    fields: Tuple[DetectedField, ...] = ()
    actions: Tuple[DetectedField, ...] = ()
    metadata: PageMetadata = Field(default_factory=PageMetadata)


class NavigationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    reason: NavigationReason
    message: str
    final_classification: Optional[PageClassification] = None


class HistoryEntry(BaseModel):
    url: str
    classification: PageClassification
    action: str = ""
    timestamp: float
    user_input: bool = False


class ResumeFile(BaseModel):
    name: str
    mime_type: str = "application/pdf"
    data: bytes


class IdentityProfile(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    linkedin: Optional[str] = None
    website: Optional[str] = None
    country: Optional[str] = None
    years_experience: Optional[str] = None
    cover_letter: Optional[str] = None
    work_authorized: bool = True
    sponsorship_required: bool = False
    resume: Optional[ResumeFile] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class FillReport(BaseModel):
    filled: List[FieldPurpose] = Field(default_factory=list)
    skipped: List[FieldPurpose] = Field(default_factory=list)
    failed: List[FieldPurpose] = Field(default_factory=list)
