from dataclasses import dataclass

ROLE_PATIENT = "patient"
ROLE_PRACTITIONER = "practitioner"
ROLE_GYM = "gym"
ROLE_ADMIN = "admin"

ROLES = {ROLE_PATIENT, ROLE_PRACTITIONER, ROLE_GYM, ROLE_ADMIN}


@dataclass(frozen=True)
class Identity:
    """The already-authenticated caller, passed explicitly into every booking call."""

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def acts_for(self, user_id: int) -> bool:
        return self.is_admin or self.user_id == user_id
