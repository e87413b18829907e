"""Principal model - the authenticated caller."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from tareas.models.enums import Rol


class Principal(BaseModel):
    """Identity, role and department of the caller for one request."""

    model_config = ConfigDict(frozen=True)

    id: int
    nombre: str
    username: str
    rol: Rol
    departamento_id: Optional[int] = None
    departamento_nombre: Optional[str] = None
    departamento_es_calidad: bool = False

    @property
    def is_super_admin(self) -> bool:
        return self.rol == Rol.SUPER_ADMIN

    def in_department(self, departamento_id: int | None) -> bool:
        """True if the caller belongs to the given department."""
        return self.departamento_id is not None and self.departamento_id == departamento_id

    def is_quality_member(self, marker: str) -> bool:
        """
        Membership in a quality department.

        The explicit department flag wins; the name substring is the legacy
        convention and is skipped when ``marker`` is empty.
        """
        if self.departamento_es_calidad:
            return True
        if not marker or not self.departamento_nombre:
            return False
        return marker.upper() in self.departamento_nombre.upper()
