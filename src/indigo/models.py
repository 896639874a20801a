"""
Pydantic models for the companion's locally owned state.

These describe the profile and settings documents that the chat, memory
and settings screens read and write. The sync core treats them as opaque
JSON, so every model keeps unknown fields instead of dropping them.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Base for documents stored with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict:
        """Serialize to the JSON document shape used on disk."""
        return self.model_dump(mode="json", by_alias=True)


class AIProfile(_CamelModel):
    """Who the companion is."""

    id: str = "default"
    name: str = "Indigo"
    personality: str = "Warm, curious and supportive."
    backstory: str = ""
    appearance: str = ""
    relationship_type: str = "friend"
    response_style: str = "conversational"
    response_length: str = "medium"
    reference_image: Optional[str] = None
    voice_uri: Optional[str] = Field(default=None, alias="voiceURI")
    voice_speed: float = 1.0
    voice_pitch: float = 1.0
    temperature: float = 0.8
    top_p: float = 0.95
    top_k: int = 40
    time_awareness: bool = True
    ai_can_generate_images: bool = False
    auto_read_messages: bool = False


class UserProfile(_CamelModel):
    """Who the companion is talking to."""

    name: str = "Friend"
    bio: str = ""
    appearance: str = ""
    preferences: str = ""
    reference_image: Optional[str] = None


class AppSettings(_CamelModel):
    """Application settings, including secrets that must stay on device."""

    llm_api_url: str = ""
    llm_api_key: str = ""
    llm_model: str = ""
    image_api_url: str = ""
    image_api_key: str = ""
    image_model: str = ""
    image_style: str = "realistic"
    hf_api_key: str = ""
    proactive_frequency: str = "off"
    notifications_enabled: bool = False
    location_enabled: bool = False
    auto_save_interval: int = 5
    auto_backup_interval: int = 0


SECRET_SETTINGS_FIELDS = ("llmApiKey", "imageApiKey", "hfApiKey")

DEFAULT_AI_PROFILE = AIProfile().to_document()
DEFAULT_USER_PROFILE = UserProfile().to_document()
DEFAULT_SETTINGS = AppSettings().to_document()
