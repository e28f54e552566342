"""
Configure generic models not specific
to a particular feature.
"""

from sqlmodel import SQLModel


class MessageResponse(SQLModel):
    message: str
