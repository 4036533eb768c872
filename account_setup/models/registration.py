"""
Registration Form Models.

``RegistrationForm`` is the complete form a screen submits;
``RegistrationDraft`` is the partially filled version persisted while
the user is still typing.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from account_setup.models.user import UserProfile


class RegistrationForm(BaseModel):
    """Every field of the registration screen, as raw strings."""

    email: str = ""
    password: str = ""
    confirm_password: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    country: str = ""
    date_of_birth: str = ""
    address: str = ""
    city: str = ""
    zip_code: str = ""

    def to_profile(self) -> UserProfile:
        """Return the profile part of the form (everything but the passwords)."""
        return UserProfile(
            **self.model_dump(exclude={"password", "confirm_password"}),
        )


class RegistrationDraft(BaseModel):
    """A partially completed registration form.

    Unset fields are ``None`` so a merge only overwrites what the user
    actually touched.
    """

    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
