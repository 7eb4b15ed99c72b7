from enum import Enum

class Role(str, Enum):
    SECRETARY = "secretary"
    SERVER = "server"  # caseworker
    COORDINATOR = "coordinator"
    BENEFICIARY = "beneficiary"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """
        Map a raw claim/column value to a Role, or None if it is not one.
        """
        try:
            return cls(value)
        except ValueError:
            return None
