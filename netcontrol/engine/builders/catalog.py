"""Builders for the reference catalog and the user accounts."""
from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

from netcontrol.db.models import (
    Database,
    DatabaseEdgeField,
    DatabaseNodeField,
    DatabaseType,
    DatabaseUser,
    Role,
    User,
    UserRole,
)
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.specifications import HasText, IsUnique, NotGeneric
from netcontrol.engine.builders.base import Draft, EntityBuilder, ItemRejected, check_rules, unique


class UniqueNameMixin:
    """Names unique across the store and the request; an edit may keep its own name."""

    unique_attribute = "name"

    def taken_names(self, session: Session, payloads: List[Any]) -> Dict[str, str]:
        column = getattr(self.model, self.unique_attribute)
        values = unique(getattr(payload, self.unique_attribute) for payload in payloads)
        if not values:
            return {}
        return dict(session.query(column, self.model.id).filter(column.in_(values)).all())

    def claim_name(self, references: Dict[str, Any], value: str, draft_id: str) -> None:
        owners = references["taken"]
        others = {name for name, owner in owners.items() if owner != draft_id}
        check_rules([IsUnique("value", others, reason=f"{self.unique_attribute} '{value}' is already in use")],
                    {"value": value})
        owners[value] = draft_id


class DatabaseTypeBuilder(UniqueNameMixin, EntityBuilder):
    kind = EntityKind.DATABASE_TYPE
    model = DatabaseType

    def resolve_references(self, session, payloads, editing):
        generic_ids = {
            row.id for row in
            session.query(DatabaseType.id).filter(DatabaseType.name == self.generic_type_name)
        }
        return {"taken": self.taken_names(session, payloads), "generic_ids": generic_ids}

    def assemble(self, payload, references, editing):
        name = (payload.name or "").strip()
        candidate = {
            "name": name,
            "is_generic": name == self.generic_type_name or payload.id in references["generic_ids"],
        }
        check_rules([
            HasText("name", reason="a name is required"),
            NotGeneric(reason="the generic database type cannot be created or edited"),
        ], candidate)
        draft_id = self._draft_id(payload)
        self.claim_name(references, name, draft_id)
        return Draft(id=draft_id, fields={"name": name, "description": payload.description})


class DatabaseBuilder(UniqueNameMixin, EntityBuilder):
    kind = EntityKind.DATABASE
    model = Database
    editable_fields = ("name", "description", "url", "is_public")
    edit_collections = ("database_users",)

    def resolve_references(self, session, payloads, editing):
        type_ids = unique(payload.database_type_id for payload in payloads if payload.database_type_id)
        types = dict(session.query(DatabaseType.id, DatabaseType.name).filter(DatabaseType.id.in_(type_ids)).all())
        generic_ids = set(session.execute(self.generic_databases()).scalars()) if editing else set()
        user_ids = unique(user_id for payload in payloads for user_id in payload.user_ids)
        users = {row.id for row in session.query(User.id).filter(User.id.in_(user_ids))}
        return {
            "types": types,
            "generic_ids": generic_ids,
            "users": users,
            "taken": self.taken_names(session, payloads),
        }

    def assemble(self, payload, references, editing):
        name = (payload.name or "").strip()
        type_name = references["types"].get(payload.database_type_id)
        if editing:
            candidate = {"name": name, "is_generic": payload.id in references["generic_ids"]}
            rules = [
                HasText("name", reason="a name is required"),
                NotGeneric(reason="the generic database cannot be edited"),
            ]
        else:
            candidate = {"name": name, "type": type_name, "is_generic": type_name == self.generic_type_name}
            rules = [
                HasText("name", reason="a name is required"),
                HasText("type", reason="a valid database type is required"),
                NotGeneric(reason="databases cannot be added to the generic database type"),
            ]
        check_rules(rules, candidate)
        draft_id = self._draft_id(payload)
        self.claim_name(references, name, draft_id)
        user_ids = [user_id for user_id in unique(payload.user_ids) if user_id in references["users"]]
        return Draft(
            id=draft_id,
            fields={
                "name": name,
                "description": payload.description,
                "url": payload.url,
                "is_public": payload.is_public,
                "database_type_id": payload.database_type_id,
            },
            collections={"database_users": [DatabaseUser(user_id=user_id) for user_id in user_ids]},
        )


class DatabaseFieldBuilder(UniqueNameMixin, EntityBuilder):
    """Fields describing the values stored on nodes or edges of one database."""

    editable_fields = ("name", "description", "url")

    def resolve_references(self, session, payloads, editing):
        database_ids = unique(payload.database_id for payload in payloads if payload.database_id)
        canonical = {
            row.id for row in
            session.query(Database.id).filter(
                Database.id.in_(database_ids),
                Database.id.in_(self.canonical_databases()),
            )
        }
        return {"databases": canonical, "taken": self.taken_names(session, payloads)}

    def assemble(self, payload, references, editing):
        name = (payload.name or "").strip()
        check_rules([HasText("name", reason="a name is required")], {"name": name})
        if not editing and payload.database_id not in references["databases"]:
            raise ItemRejected("a valid non-generic database is required")
        draft_id = self._draft_id(payload)
        self.claim_name(references, name, draft_id)
        return Draft(id=draft_id, fields={
            "name": name,
            "description": payload.description,
            "url": payload.url,
            "is_searchable": payload.is_searchable,
            "database_id": payload.database_id,
        })


class DatabaseNodeFieldBuilder(DatabaseFieldBuilder):
    kind = EntityKind.DATABASE_NODE_FIELD
    model = DatabaseNodeField


class DatabaseEdgeFieldBuilder(DatabaseFieldBuilder):
    kind = EntityKind.DATABASE_EDGE_FIELD
    model = DatabaseEdgeField


class UserBuilder(UniqueNameMixin, EntityBuilder):
    kind = EntityKind.USER
    model = User
    unique_attribute = "email"
    editable_fields = ("email", "name")
    edit_collections = ("user_roles",)

    def resolve_references(self, session, payloads, editing):
        role_ids = unique(role_id for payload in payloads for role_id in payload.role_ids)
        roles = {row.id for row in session.query(Role.id).filter(Role.id.in_(role_ids))}
        return {"roles": roles, "taken": self.taken_names(session, payloads)}

    def assemble(self, payload, references, editing):
        email = (payload.email or "").strip()
        check_rules([HasText("email", reason="an e-mail address is required")], {"email": email})
        draft_id = self._draft_id(payload)
        self.claim_name(references, email, draft_id)
        role_ids = [role_id for role_id in unique(payload.role_ids) if role_id in references["roles"]]
        return Draft(
            id=draft_id,
            fields={"email": email, "name": payload.name},
            collections={"user_roles": [UserRole(role_id=role_id) for role_id in role_ids]},
        )


class RoleBuilder(UniqueNameMixin, EntityBuilder):
    kind = EntityKind.ROLE
    model = Role
    editable_fields = ("name",)

    def resolve_references(self, session, payloads, editing):
        return {"taken": self.taken_names(session, payloads)}

    def assemble(self, payload, references, editing):
        name = (payload.name or "").strip()
        check_rules([HasText("name", reason="a name is required")], {"name": name})
        draft_id = self._draft_id(payload)
        self.claim_name(references, name, draft_id)
        return Draft(id=draft_id, fields={"name": name})
