from __future__ import annotations


class User:
    """A registered library user. The password hash never leaves this object."""

    def __init__(self, id: int, email: str, name: str, role: str, created_at: str | None = None,
                 password_hash: str | None = None) -> None:
        self.id = id
        self.email = email
        self.name = name
        self.role = role
        self.created_at = created_at
        self.password_hash = password_hash

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}> ({self.role})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data["id"],
            email=data["email"],
            name=data["name"],
            role=data["role"],
            created_at=data.get("created_at"),
            password_hash=data.get("password_hash"),
        )
