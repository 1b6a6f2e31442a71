import enum
import uuid
from datetime import date, datetime, timezone
from typing import Any

from pydantic import EmailStr
from sqlalchemy import JSON, DateTime, Text, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timestamps back naive; treat those as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class UserRole(str, enum.Enum):
    admin = "admin"
    librarian = "librarian"
    researcher = "researcher"
    visitor = "visitor"
    public_user = "public_user"
    subscriber = "subscriber"
    partner = "partner"
    producer = "producer"
    editor = "editor"
    printer = "printer"
    distributor = "distributor"
    author = "author"
    dac = "dac"
    comptable = "comptable"
    direction = "direction"
    read_only = "read_only"


STAFF_ROLES = {UserRole.admin, UserRole.librarian}


class Language(str, enum.Enum):
    fr = "fr"
    ar = "ar"
    ber = "ber"
    en = "en"


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    is_active: bool = True
    is_superuser: bool = False
    full_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    role: UserRole = Field(default=UserRole.public_user)
    preferred_language: Language = Field(default=Language.fr)


# Properties to receive via API on creation
class UserCreate(UserBase):
    password: str = Field(min_length=8, max_length=128)


class UserRegister(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    full_name: str | None = Field(default=None, max_length=255)
    preferred_language: Language = Language.fr


# Properties to receive via API on update, all are optional
class UserUpdate(UserBase):
    email: EmailStr | None = Field(default=None, max_length=255)  # type: ignore
    password: str | None = Field(default=None, min_length=8, max_length=128)
    role: UserRole | None = None  # type: ignore
    preferred_language: Language | None = None  # type: ignore


class UserUpdateMe(SQLModel):
    full_name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    preferred_language: Language | None = None


class UpdatePassword(SQLModel):
    current_password: str = Field(min_length=8, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


# Database model, database table inferred from class name
class User(UserBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    hashed_password: str
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )

    @property
    def is_staff(self) -> bool:
        return self.is_superuser or self.role in STAFF_ROLES


# Properties to return via API, id is always required
class UserPublic(UserBase):
    id: uuid.UUID
    created_at: datetime | None = None


class UsersPublic(SQLModel):
    data: list[UserPublic]
    count: int


# Generic message
class Message(SQLModel):
    message: str


# JSON payload containing access token
class Token(SQLModel):
    access_token: str
    token_type: str = "bearer"


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


# Activity log

class ActivityLog(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    action: str = Field(max_length=100, index=True)
    resource_type: str = Field(max_length=100, index=True)
    resource_id: str | None = Field(default=None, max_length=100)
    details: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=500)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ActivityLogPublic(SQLModel):
    id: uuid.UUID
    action: str
    resource_type: str
    resource_id: str | None
    details: dict[str, Any]
    ip_address: str | None
    user_id: uuid.UUID | None
    created_at: datetime | None


class ActivityLogsPublic(SQLModel):
    data: list[ActivityLogPublic]
    count: int


# Content management

class ContentType(str, enum.Enum):
    news = "news"
    event = "event"
    exhibition = "exhibition"
    page = "page"


class ContentStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class ContentBase(SQLModel):
    title: str = Field(min_length=1, max_length=500)
    content_type: ContentType
    excerpt: str | None = Field(default=None, max_length=1000)
    content_body: str = Field(default="", sa_type=Text)
    tags: list[str] = Field(default_factory=list, sa_type=JSON)
    featured_image_url: str | None = None
    is_featured: bool = False
    start_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    end_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    location: str | None = Field(default=None, max_length=255)
    meta_title: str | None = Field(default=None, max_length=255)
    meta_description: str | None = Field(default=None, max_length=500)
    seo_keywords: list[str] = Field(default_factory=list, sa_type=JSON)
    language: Language = Language.fr


class ContentCreate(ContentBase):
    slug: str | None = Field(default=None, max_length=255)


class ContentUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    excerpt: str | None = None
    content_body: str | None = None
    tags: list[str] | None = None
    featured_image_url: str | None = None
    is_featured: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    location: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    seo_keywords: list[str] | None = None


class Content(ContentBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    slug: str = Field(unique=True, index=True, max_length=255)
    status: ContentStatus = Field(default=ContentStatus.draft)
    view_count: int = 0
    published_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    author_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    translations: list["ContentTranslation"] = Relationship(back_populates="content", cascade_delete=True)


class ContentPublic(ContentBase):
    id: uuid.UUID
    slug: str
    status: ContentStatus
    view_count: int
    published_at: datetime | None = None
    author_id: uuid.UUID | None = None
    created_at: datetime | None = None


class ContentsPublic(SQLModel):
    data: list[ContentPublic]
    count: int


class ContentTranslation(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("content_id", "language"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    content_id: uuid.UUID = Field(foreign_key="content.id", nullable=False, ondelete="CASCADE")
    language: Language
    title: str = Field(max_length=500)
    excerpt: str | None = None
    content_body: str = Field(default="", sa_type=Text)
    is_auto: bool = True
    translated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    content: Content | None = Relationship(back_populates="translations")


class ContentTranslationPublic(SQLModel):
    language: Language
    title: str
    excerpt: str | None
    content_body: str
    is_auto: bool


# Manuscripts

class AccessLevel(str, enum.Enum):
    public = "public"
    restricted = "restricted"
    confidential = "confidential"


class ManuscriptStatus(str, enum.Enum):
    available = "available"
    reserved = "reserved"
    maintenance = "maintenance"
    digitization = "digitization"


class ManuscriptBase(SQLModel):
    title: str = Field(min_length=1, max_length=500)
    author: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, sa_type=Text)
    language: str | None = Field(default=None, max_length=20)
    cote: str | None = Field(default=None, max_length=100)
    inventory_number: str | None = Field(default=None, max_length=100)
    genre: str | None = Field(default=None, max_length=100)
    period: str | None = Field(default=None, max_length=100)
    material: str | None = Field(default=None, max_length=100)
    dimensions: str | None = Field(default=None, max_length=100)
    access_level: AccessLevel = AccessLevel.public
    status: ManuscriptStatus = ManuscriptStatus.available
    is_visible: bool = True


class ManuscriptCreate(ManuscriptBase):
    pass


class ManuscriptUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    author: str | None = None
    description: str | None = None
    language: str | None = None
    cote: str | None = None
    genre: str | None = None
    period: str | None = None
    access_level: AccessLevel | None = None
    status: ManuscriptStatus | None = None
    is_visible: bool | None = None


class Manuscript(ManuscriptBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    page_count: int = 0
    has_ocr: bool = False
    search_keywords: list[str] = Field(default_factory=list, sa_type=JSON)
    created_by: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    pages: list["ManuscriptPage"] = Relationship(back_populates="manuscript", cascade_delete=True)


class ManuscriptPublic(ManuscriptBase):
    id: uuid.UUID
    page_count: int
    has_ocr: bool
    search_keywords: list[str]
    created_at: datetime | None = None


class ManuscriptsPublic(SQLModel):
    data: list[ManuscriptPublic]
    count: int


class ManuscriptPage(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("manuscript_id", "page_number"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    manuscript_id: uuid.UUID = Field(foreign_key="manuscript.id", nullable=False, ondelete="CASCADE")
    page_number: int = Field(ge=1)
    ocr_text: str | None = Field(default=None, sa_type=Text)
    image_url: str | None = None
    manuscript: Manuscript | None = Relationship(back_populates="pages")


class ManuscriptPageUpsert(SQLModel):
    ocr_text: str | None = None
    image_url: str | None = None


# Digital library

class DigitalLibraryDocumentBase(SQLModel):
    title: str = Field(min_length=1, max_length=500)
    author: str | None = Field(default=None, max_length=255)
    language: str | None = Field(default=None, max_length=20)


class DigitalLibraryDocument(DigitalLibraryDocumentBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    pages_count: int = 0
    ocr_processed: bool = False
    file_url: str | None = None
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    deleted_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    pages: list["DigitalLibraryPage"] = Relationship(back_populates="document", cascade_delete=True)


class DigitalLibraryDocumentPublic(DigitalLibraryDocumentBase):
    id: uuid.UUID
    pages_count: int
    ocr_processed: bool
    file_url: str | None = None
    created_at: datetime | None = None


class DigitalLibraryPage(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("document_id", "page_number"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    document_id: uuid.UUID = Field(
        foreign_key="digitallibrarydocument.id", nullable=False, ondelete="CASCADE"
    )
    page_number: int = Field(ge=1)
    ocr_text: str | None = Field(default=None, sa_type=Text)
    document: DigitalLibraryDocument | None = Relationship(back_populates="pages")


# Legal deposit

class DepositStatus(str, enum.Enum):
    brouillon = "brouillon"
    soumis = "soumis"
    en_attente_validation_b = "en_attente_validation_b"
    valide_par_b = "valide_par_b"
    rejete_par_b = "rejete_par_b"
    en_attente_comite_validation = "en_attente_comite_validation"
    valide_par_comite = "valide_par_comite"
    rejete_par_comite = "rejete_par_comite"
    en_cours = "en_cours"
    attribue = "attribue"
    receptionne = "receptionne"
    rejete = "rejete"


class SupportType(str, enum.Enum):
    imprime = "imprime"
    electronique = "electronique"


class MonographType(str, enum.Enum):
    livres = "livres"
    beaux_livres = "beaux_livres"
    encyclopedies = "encyclopedies"
    corans = "corans"
    theses = "theses"
    ouvrages_scolaires = "ouvrages_scolaires"
    periodiques = "periodiques"
    musique = "musique"


class LegalDepositRequestBase(SQLModel):
    title: str = Field(min_length=1, max_length=500)
    subtitle: str | None = Field(default=None, max_length=500)
    author_name: str | None = Field(default=None, max_length=255)
    support_type: SupportType
    monograph_type: MonographType
    language: str | None = Field(default=None, max_length=20)
    page_count: int | None = Field(default=None, ge=1)
    publication_date: date | None = None
    extra_metadata: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)


class LegalDepositRequestCreate(LegalDepositRequestBase):
    collaborator_id: uuid.UUID | None = None


class LegalDepositRequest(LegalDepositRequestBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    request_number: str = Field(unique=True, index=True, max_length=50)
    status: DepositStatus = Field(default=DepositStatus.brouillon)
    initiator_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    collaborator_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    isbn: str | None = Field(default=None, max_length=32)
    issn: str | None = Field(default=None, max_length=32)
    ismn: str | None = Field(default=None, max_length=32)
    dl_number: str | None = Field(default=None, max_length=50)
    attribution_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    submission_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    reception_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    rejection_reason: str | None = None
    confirmation_status: str | None = Field(default=None, max_length=50)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class LegalDepositRequestPublic(SQLModel):
    id: uuid.UUID
    request_number: str
    title: str
    subtitle: str | None = None
    author_name: str | None = None
    support_type: SupportType
    monograph_type: MonographType
    status: DepositStatus
    initiator_id: uuid.UUID | None = None
    collaborator_id: uuid.UUID | None = None
    isbn: str | None = None
    issn: str | None = None
    ismn: str | None = None
    dl_number: str | None = None
    submission_date: datetime | None = None
    attribution_date: datetime | None = None
    reception_date: datetime | None = None
    rejection_reason: str | None = None
    confirmation_status: str | None = None
    created_at: datetime | None = None


class LegalDepositRequestsPublic(SQLModel):
    data: list[LegalDepositRequestPublic]
    count: int


class DepositTransition(SQLModel):
    status: DepositStatus
    notes: str | None = None
    rejection_reason: str | None = None


class NumberAttribution(SQLModel):
    isbn: str | None = Field(default=None, max_length=32)
    issn: str | None = Field(default=None, max_length=32)
    ismn: str | None = Field(default=None, max_length=32)


class DepositConfirmationToken(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    request_id: uuid.UUID = Field(foreign_key="legaldepositrequest.id", nullable=False, ondelete="CASCADE")
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    party_type: str = Field(max_length=50)  # initiator, collaborator
    token: str = Field(unique=True, index=True, max_length=100)
    status: str = Field(default="pending", max_length=20)  # pending, confirmed, rejected, expired
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))  # type: ignore
    confirmed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    rejection_reason: str | None = None


class DepositConfirmationTokenPublic(SQLModel):
    id: uuid.UUID
    request_id: uuid.UUID
    user_id: uuid.UUID | None
    party_type: str
    status: str
    expires_at: datetime
    confirmed_at: datetime | None = None


# Professional registry

class ProfessionalType(str, enum.Enum):
    editeur = "editeur"
    imprimeur = "imprimeur"
    producteur = "producteur"
    distributeur = "distributeur"


class ProfessionalRegistry(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    professional_type: ProfessionalType
    company_name: str = Field(max_length=255)
    contact_person: str = Field(max_length=255)
    email: EmailStr = Field(max_length=255, index=True)
    phone: str | None = Field(default=None, max_length=50)
    address: str | None = None
    city: str | None = Field(default=None, max_length=100)
    registration_number: str | None = Field(default=None, unique=True, max_length=50)
    is_verified: bool = False
    verification_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    last_dl_number: str | None = Field(default=None, max_length=50)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ProfessionalRegistryPublic(SQLModel):
    id: uuid.UUID
    professional_type: ProfessionalType
    company_name: str
    contact_person: str
    email: str
    city: str | None = None
    registration_number: str | None = None
    is_verified: bool
    last_dl_number: str | None = None


class ProfessionalRegistrationRequestBase(SQLModel):
    professional_type: ProfessionalType
    company_name: str = Field(min_length=1, max_length=255)
    contact_person: str = Field(min_length=1, max_length=255)
    email: EmailStr = Field(max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    address: str | None = None
    city: str | None = Field(default=None, max_length=100)
    registration_data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)


class ProfessionalRegistrationRequestCreate(ProfessionalRegistrationRequestBase):
    pass


class ProfessionalRegistrationRequest(ProfessionalRegistrationRequestBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    status: str = Field(default="pending", max_length=20)  # pending, approved, rejected
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    reviewed_by: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    reviewed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    rejection_reason: str | None = None
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ProfessionalRegistrationRequestPublic(ProfessionalRegistrationRequestBase):
    id: uuid.UUID
    status: str
    user_id: uuid.UUID | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


class ReviewDecision(SQLModel):
    approve: bool
    rejection_reason: str | None = None


# Cultural space bookings

class CulturalSpaceBase(SQLModel):
    name: str = Field(max_length=255)
    capacity: int = Field(ge=1)
    is_active: bool = True


class CulturalSpaceCreate(CulturalSpaceBase):
    pass


class CulturalSpace(CulturalSpaceBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class CulturalSpacePublic(CulturalSpaceBase):
    id: uuid.UUID


class BookingBase(SQLModel):
    space_id: uuid.UUID = Field(foreign_key="culturalspace.id", nullable=False, ondelete="CASCADE")
    organization_name: str = Field(max_length=255)
    organization_type: str = Field(max_length=100)
    contact_person: str = Field(max_length=255)
    contact_email: EmailStr = Field(max_length=255)
    contact_phone: str = Field(max_length=50)
    event_title: str = Field(max_length=255)
    event_description: str | None = None
    start_date: datetime = Field(sa_type=DateTime(timezone=True))  # type: ignore
    end_date: datetime = Field(sa_type=DateTime(timezone=True))  # type: ignore
    participants_count: int = Field(ge=1)


class BookingCreate(BookingBase):
    pass


class Booking(BookingBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    status: str = Field(default="en_attente", max_length=20)  # en_attente, validee, rejetee, annulee
    total_amount: float | None = None
    rejection_reason: str | None = None
    reviewed_by: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    reviewed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class BookingPublic(BookingBase):
    id: uuid.UUID
    user_id: uuid.UUID | None = None
    status: str
    total_amount: float | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


# Messaging and notifications

class Conversation(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str | None = Field(default=None, max_length=255)
    conversation_type: str = Field(default="direct", max_length=20)  # direct, group, support
    created_by: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    last_message_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    participants: list["ConversationParticipant"] = Relationship(
        back_populates="conversation", cascade_delete=True
    )


class ConversationParticipant(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("conversation_id", "user_id"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    conversation_id: uuid.UUID = Field(foreign_key="conversation.id", nullable=False, ondelete="CASCADE")
    user_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    conversation: Conversation | None = Relationship(back_populates="participants")


class ConversationCreate(SQLModel):
    title: str | None = Field(default=None, max_length=255)
    conversation_type: str = Field(default="direct", max_length=20)
    participant_ids: list[uuid.UUID] = Field(default_factory=list)


class ConversationPublic(SQLModel):
    id: uuid.UUID
    title: str | None
    conversation_type: str
    created_by: uuid.UUID | None
    created_at: datetime | None
    last_message_at: datetime | None
    participant_ids: list[uuid.UUID] = Field(default_factory=list)


class ChatMessage(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    conversation_id: uuid.UUID = Field(foreign_key="conversation.id", nullable=False, ondelete="CASCADE")
    sender_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    content: str = Field(sa_type=Text)
    is_read: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ChatMessageCreate(SQLModel):
    content: str = Field(min_length=1, max_length=10000)


class ChatMessagePublic(SQLModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    is_read: bool
    created_at: datetime | None


class Notification(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True)
    type: str = Field(max_length=50)
    title: str = Field(max_length=255)
    message: str = Field(sa_type=Text)
    link: str | None = None
    priority: int = 3
    category: str | None = Field(default=None, max_length=50)
    module: str = Field(default="bnrm", max_length=50)
    is_read: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class NotificationPublic(SQLModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    link: str | None
    priority: int
    category: str | None
    is_read: bool
    created_at: datetime | None


class UnreadCount(SQLModel):
    count: int


# Services, subscriptions, daily pass and payments

class BnrmServiceBase(SQLModel):
    code: str = Field(unique=True, max_length=50)
    name: str = Field(max_length=255)
    category: str | None = Field(default=None, max_length=100)
    price: float = Field(default=0, ge=0)
    currency: str = Field(default="MAD", max_length=3)
    is_active: bool = True


class BnrmServiceCreate(BnrmServiceBase):
    pass


class BnrmService(BnrmServiceBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class BnrmServicePublic(BnrmServiceBase):
    id: uuid.UUID


class ServiceRegistration(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    service_id: uuid.UUID = Field(foreign_key="bnrmservice.id", nullable=False, ondelete="CASCADE")
    status: str = Field(default="pending", max_length=20)  # pending, active, expired, cancelled
    is_paid: bool = False
    registration_data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    expires_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    renewal_reminder_sent: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ServiceRegistrationCreate(SQLModel):
    service_id: uuid.UUID
    registration_data: dict[str, Any] = Field(default_factory=dict)


class ServiceRegistrationPublic(SQLModel):
    id: uuid.UUID
    service_id: uuid.UUID
    status: str
    is_paid: bool
    expires_at: datetime | None
    created_at: datetime | None


class DailyPassUsage(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    service_id: uuid.UUID = Field(foreign_key="bnrmservice.id", nullable=False, ondelete="CASCADE")
    used_on: date


class DailyPassUsagePublic(SQLModel):
    id: uuid.UUID
    user_id: uuid.UUID
    service_id: uuid.UUID
    used_on: date


class TransactionType(str, enum.Enum):
    reproduction = "reproduction"
    subscription = "subscription"
    legal_deposit = "legal_deposit"
    service_bnrm = "service_bnrm"
    recharge_wallet = "recharge_wallet"
    donation = "donation"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"
    cancelled = "cancelled"


class PaymentTransaction(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    registration_id: uuid.UUID | None = Field(
        default=None, foreign_key="serviceregistration.id", ondelete="SET NULL"
    )
    amount: float
    currency: str = Field(max_length=3)
    transaction_type: TransactionType
    status: PaymentStatus = Field(default=PaymentStatus.pending)
    gateway_session_id: str | None = Field(default=None, index=True, max_length=255)
    checkout_url: str | None = None
    details: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class PaymentCreate(SQLModel):
    amount: float
    transaction_type: TransactionType = TransactionType.donation
    registration_id: uuid.UUID | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class PaymentSession(SQLModel):
    url: str
    session_id: str
    transaction_id: uuid.UUID


# External integrations and webhooks

class ExternalIntegrationBase(SQLModel):
    name: str = Field(max_length=255)
    system_type: str = Field(max_length=50)
    data_mapping: dict[str, dict[str, str]] = Field(default_factory=dict, sa_type=JSON)
    is_active: bool = True


class ExternalIntegrationCreate(ExternalIntegrationBase):
    pass


class ExternalIntegration(ExternalIntegrationBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    webhooks: list["IntegrationWebhook"] = Relationship(back_populates="integration", cascade_delete=True)


class ExternalIntegrationPublic(ExternalIntegrationBase):
    id: uuid.UUID


class IntegrationWebhookBase(SQLModel):
    webhook_secret: str | None = Field(default=None, max_length=255)
    signature_header: str = Field(default="X-Webhook-Signature", max_length=100)
    signature_algorithm: str = Field(default="sha256", max_length=10)
    allowed_ips: list[str] = Field(default_factory=list, sa_type=JSON)
    event_types: list[str] = Field(default_factory=lambda: ["*"], sa_type=JSON)
    is_active: bool = True


class IntegrationWebhookCreate(IntegrationWebhookBase):
    integration_id: uuid.UUID


class IntegrationWebhook(IntegrationWebhookBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    integration_id: uuid.UUID = Field(
        foreign_key="externalintegration.id", nullable=False, ondelete="CASCADE"
    )
    integration: ExternalIntegration | None = Relationship(back_populates="webhooks")


class IntegrationWebhookPublic(SQLModel):
    id: uuid.UUID
    integration_id: uuid.UUID
    signature_header: str
    signature_algorithm: str
    allowed_ips: list[str]
    event_types: list[str]
    is_active: bool
    has_secret: bool = False


class WebhookEvent(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    webhook_id: uuid.UUID = Field(foreign_key="integrationwebhook.id", nullable=False, ondelete="CASCADE")
    event_type: str = Field(max_length=100)
    event_data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    headers: dict[str, str] = Field(default_factory=dict, sa_type=JSON)
    source_ip: str | None = Field(default=None, max_length=64)
    status: str = Field(default="pending", max_length=20)  # pending, processing, processed, failed
    signature_valid: bool | None = None
    error_message: str | None = None
    received_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    processed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore


class WebhookEventPublic(SQLModel):
    id: uuid.UUID
    webhook_id: uuid.UUID
    event_type: str
    status: str
    source_ip: str | None
    signature_valid: bool | None
    error_message: str | None
    received_at: datetime | None
    processed_at: datetime | None


class CatalogMetadata(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    source_record_id: str = Field(unique=True, index=True, max_length=255)
    title: str | None = Field(default=None, max_length=500)
    author: str | None = Field(default=None, max_length=255)
    isbn: str | None = Field(default=None, max_length=32)
    publisher: str | None = Field(default=None, max_length=255)
    publication_year: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Chatbot

class ChatbotKnowledgeBase(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1, sa_type=Text)
    category: str | None = Field(default=None, max_length=100)
    language: Language = Language.fr
    priority: int = 0
    is_active: bool = True


class ChatbotKnowledgeCreate(ChatbotKnowledgeBase):
    pass


class ChatbotKnowledgeUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    content: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, max_length=100)
    language: Language | None = None
    priority: int | None = None
    is_active: bool | None = None


class ChatbotKnowledge(ChatbotKnowledgeBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class ChatbotKnowledgePublic(ChatbotKnowledgeBase):
    id: uuid.UUID


class ChatbotInteraction(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    query_text: str = Field(sa_type=Text)
    response_text: str = Field(sa_type=Text)
    interaction_type: str = Field(default="general", max_length=50)
    language: Language = Language.fr
    details: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Workflows

class WorkflowDefinition(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(unique=True, max_length=255)
    description: str | None = None
    workflow_type: str = Field(max_length=100)
    module: str = Field(max_length=100)
    version: int = 1
    is_active: bool = True
    configuration: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    steps: list["WorkflowStep"] = Relationship(back_populates="workflow", cascade_delete=True)
    transitions: list["WorkflowTransition"] = Relationship(back_populates="workflow", cascade_delete=True)


class WorkflowRole(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("role_name", "module"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    role_name: str = Field(max_length=100)
    module: str = Field(max_length=100)
    role_level: str = Field(default="module", max_length=50)
    description: str | None = None


class WorkflowStep(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    workflow_id: uuid.UUID = Field(foreign_key="workflowdefinition.id", nullable=False, ondelete="CASCADE")
    step_name: str = Field(max_length=255)
    step_type: str = Field(max_length=50)
    step_number: int
    required_role: str | None = Field(default=None, max_length=100)
    workflow: WorkflowDefinition | None = Relationship(back_populates="steps")


class WorkflowTransition(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    workflow_id: uuid.UUID = Field(foreign_key="workflowdefinition.id", nullable=False, ondelete="CASCADE")
    transition_name: str = Field(max_length=255)
    from_step_id: uuid.UUID | None = Field(default=None, foreign_key="workflowstep.id", ondelete="CASCADE")
    to_step_id: uuid.UUID | None = Field(default=None, foreign_key="workflowstep.id", ondelete="CASCADE")
    condition: str | None = None
    workflow: WorkflowDefinition | None = Relationship(back_populates="transitions")


class WorkflowDefinitionPublic(SQLModel):
    id: uuid.UUID
    name: str
    description: str | None
    workflow_type: str
    module: str
    version: int
    is_active: bool
    configuration: dict[str, Any]
