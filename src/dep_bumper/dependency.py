from dataclasses import dataclass


@dataclass(frozen=True)
class Dependency:
    """A dependency declared in one section of the manifest."""

    name: str
    specifier: str
    section: str

    @property
    def key(self):
        return (self.section, self.name)
