"""
User Model.

The account record created once at registration.  Persisted verbatim
as JSON in the profile store and never edited afterwards.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    """The registration form fields that make up a user record.

    Everything except the generated ``id``.  ``email`` doubles as the
    login username stored in the credential vault.
    """

    email: str
    first_name: str
    last_name: str
    phone: str
    country: str
    date_of_birth: str
    address: str
    city: str
    zip_code: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


class User(UserProfile):
    """Represents the single account registered on this install."""

    id: str
