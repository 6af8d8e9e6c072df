"""
Data models for glossary records.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Category(str, Enum):
    """UI role of a source string.

    The same spelling can mean different things in different roles
    ("Fishing spot" as an object vs. a dialogue line), so each category
    keeps its own index.
    """
    ACTION = "action"
    NPC = "npc"
    ITEM = "item"
    OBJECT = "object"
    DIALOGUE = "dialogue"
    UI = "ui"
    DEFAULT = "default"

    @classmethod
    def parse(cls, value: "str | Category | None") -> "Category":
        """Resolve a category name case-insensitively; unknown names map to DEFAULT."""
        if isinstance(value, Category):
            return value
        if not value:
            return cls.DEFAULT
        name = value.strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return cls.DEFAULT


_ALIASES = {
    "dialog": "dialogue",
    "chat": "dialogue",
    "chrome": "ui",
    "ui-chrome": "ui",
}


class GlossaryRecord(BaseModel):
    """A single authored glossary line.

    Attributes:
        key: Source-language text exactly as authored (surrounding whitespace trimmed)
        category: Category the record belongs to
        value: Target-language translation
    """
    key: str = Field(..., description="Source text as authored")
    category: Category = Field(default=Category.DEFAULT, description="UI role")
    value: str = Field(..., description="Target-language text")

    @field_validator("key", "value")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("glossary key and value must not be blank")
        return v
