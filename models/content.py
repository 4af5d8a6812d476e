from sqlalchemy import Column, String, Float, Integer, Boolean, Date, DateTime, ForeignKey, Index, event, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from models.base import Base

# Canonical order is also the CSV column order
DUBBING_LANGUAGES = [
    'tamil', 'telugu', 'kannada', 'malayalam', 'hindi', 'punjabi',
    'bengali', 'marathi', 'bhojpuri', 'gujarati', 'english',
    'haryanvi', 'rajasthani', 'deccani', 'arabic'
]

SOURCES = ['In-House', 'Commissioned', 'Co-Production', 'NA', 'TBD']

AGE_RATINGS = ['U', 'U/A 7+', 'U/A 13+', 'U/A 16+', 'A', 'NA', 'Not Rated']

MIN_YEAR = 1900
MAX_YEAR = 2030
TITLE_MAX_LENGTH = 200

_ACTIVE_ONLY = text("is_active = true")


class Content(Base):
    """
    Catalog content record.

    One row per title on a platform. Dubbing availability is stored as one
    boolean column per language and exposed as the ``dubbing`` mapping;
    ``total_dubbings`` is derived from those flags on every flush and must
    never be written directly.

    Records are soft-deleted through ``is_active``; the (platform, title, year)
    triple is unique among active rows only.
    """
    __tablename__ = 'contents'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    platform = Column(String(100), nullable=False, index=True, comment="Streaming platform name")
    title = Column(String(TITLE_MAX_LENGTH), nullable=False, comment="Content title")
    year = Column(Integer, nullable=False, index=True, comment="Release year (1900-2030)")

    # Classification
    self_declared_genre = Column(String(255), comment="Genre as declared by the platform")
    assigned_genre = Column(String(100), index=True, comment="Normalized genre")
    primary_language = Column(String(100), nullable=False, index=True, comment="Primary audio language")
    self_declared_format = Column(String(255), comment="Format as declared by the platform")
    assigned_format = Column(String(100), comment="Normalized format (Movie, Series, ...)")
    age_rating = Column(String(50), default='Not Rated', comment="Age rating certificate")
    source = Column(String(50), default='TBD', comment="In-House, Commissioned, Co-Production, NA, TBD")

    # Release and runtime
    release_date = Column(Date, comment="Release date, if known")
    seasons = Column(Integer, default=1)
    episodes = Column(Integer)
    duration_hours = Column(Float, comment="Total runtime in hours")

    # Dubbing flags
    dubbing_tamil = Column(Boolean, default=False, nullable=False)
    dubbing_telugu = Column(Boolean, default=False, nullable=False)
    dubbing_kannada = Column(Boolean, default=False, nullable=False)
    dubbing_malayalam = Column(Boolean, default=False, nullable=False)
    dubbing_hindi = Column(Boolean, default=False, nullable=False)
    dubbing_punjabi = Column(Boolean, default=False, nullable=False)
    dubbing_bengali = Column(Boolean, default=False, nullable=False)
    dubbing_marathi = Column(Boolean, default=False, nullable=False)
    dubbing_bhojpuri = Column(Boolean, default=False, nullable=False)
    dubbing_gujarati = Column(Boolean, default=False, nullable=False)
    dubbing_english = Column(Boolean, default=False, nullable=False)
    dubbing_haryanvi = Column(Boolean, default=False, nullable=False)
    dubbing_rajasthani = Column(Boolean, default=False, nullable=False)
    dubbing_deccani = Column(Boolean, default=False, nullable=False)
    dubbing_arabic = Column(Boolean, default=False, nullable=False)
    total_dubbings = Column(Integer, default=0, nullable=False, comment="Derived: number of dubbed languages")

    # Ownership and lifecycle
    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=func.current_timestamp())
    updated_at = Column(DateTime, default=func.current_timestamp(), onupdate=func.current_timestamp())

    creator = relationship("User", back_populates="contents")

    __table_args__ = (
        Index(
            'uq_contents_platform_title_year_active',
            'platform', 'title', 'year',
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index('idx_contents_platform_year', 'platform', 'year'),
    )

    @property
    def dubbing(self):
        return {lang: bool(getattr(self, f"dubbing_{lang}")) for lang in DUBBING_LANGUAGES}

    @dubbing.setter
    def dubbing(self, flags):
        for lang, value in (flags or {}).items():
            key = str(lang).strip().lower()
            if key in DUBBING_LANGUAGES:
                setattr(self, f"dubbing_{key}", bool(value))
        self.total_dubbings = self.count_dubbings()

    def count_dubbings(self) -> int:
        """Number of languages flagged as dubbed."""
        return sum(1 for lang in DUBBING_LANGUAGES if getattr(self, f"dubbing_{lang}"))

    @property
    def content_type(self) -> str:
        return 'Series' if self.episodes and self.episodes > 1 else 'Movie'

    def to_dict(self):
        """Dictionary representation used by API responses and exports."""
        return {
            'id': self.id,
            'platform': self.platform,
            'title': self.title,
            'self_declared_genre': self.self_declared_genre,
            'assigned_genre': self.assigned_genre,
            'primary_language': self.primary_language,
            'self_declared_format': self.self_declared_format,
            'assigned_format': self.assigned_format,
            'year': self.year,
            'release_date': self.release_date.isoformat() if self.release_date else None,
            'seasons': self.seasons,
            'episodes': self.episodes,
            'duration_hours': self.duration_hours,
            'source': self.source,
            'dubbing': self.dubbing,
            'total_dubbings': self.total_dubbings,
            'age_rating': self.age_rating,
            'content_type': self.content_type,
            'created_by': self.created_by,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f"<Content(platform='{self.platform}', title='{self.title}', year={self.year})>"


@event.listens_for(Content, "before_insert")
@event.listens_for(Content, "before_update")
def _recompute_total_dubbings(mapper, connection, target):
    target.total_dubbings = target.count_dubbings()
