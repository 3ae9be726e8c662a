from dataclasses import dataclass


@dataclass(frozen=True)
class FileRef:
    bucket: str
    name: str

    @property
    def basename(self) -> str:
        return self.name.rsplit("/", 1)[-1]

    def __str__(self) -> str:
        return f"{self.bucket}/{self.name}"


@dataclass(frozen=True)
class PartResult:
    part: FileRef
    execution_id: str
