"""Storage references persisted on video records.

A reference names one object by bucket and key. It is stored as
"bucket,key" and expanded into a presigned URL at read time.
"""

from dataclasses import dataclass

SEPARATOR = ","


class InvalidStorageReferenceError(ValueError):
    """Raised when a stored value is not exactly "bucket,key"."""

    pass


@dataclass(frozen=True)
class StorageReference:
    """An object location in the object store."""

    bucket: str
    key: str

    def __post_init__(self) -> None:
        for name, part in (("bucket", self.bucket), ("key", self.key)):
            if not part:
                raise InvalidStorageReferenceError(f"Storage reference {name} is empty")
            if SEPARATOR in part:
                raise InvalidStorageReferenceError(
                    f"Storage reference {name} must not contain {SEPARATOR!r}"
                )

    @classmethod
    def parse(cls, value: str) -> "StorageReference":
        """Parse a stored "bucket,key" value.

        Raises:
            InvalidStorageReferenceError: Unless the value has exactly one
                separator with non-empty text on both sides
        """
        if not isinstance(value, str):
            raise InvalidStorageReferenceError("Storage reference must be a string")

        parts = value.split(SEPARATOR)
        if len(parts) != 2:
            raise InvalidStorageReferenceError(
                f"Storage reference must contain exactly one {SEPARATOR!r}, got {len(parts) - 1}"
            )
        return cls(bucket=parts[0], key=parts[1])

    def format(self) -> str:
        return f"{self.bucket}{SEPARATOR}{self.key}"

    def __str__(self) -> str:
        return self.format()
