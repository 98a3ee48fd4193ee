"""JSON API used by the page designer.

Components are addressed by key. Every write must carry the page token in
the ``If-Match`` header; responses return the new token in the body and in
the ``ETag`` header.
"""

from typing import Annotated, Any
from uuid import UUID

from litestar import Controller, Response, delete, get, patch, post, put
from litestar.params import Parameter
from sqlalchemy.ext.asyncio import AsyncSession

from pagecraft.controllers.schemas import (
    AddComponentIn,
    CreatePageIn,
    MoveComponentIn,
    ReorderIn,
    SavePageIn,
    VersionIn,
)
from pagecraft.db.models import Page, PageComponent, PageVersion
from pagecraft.db.services import designer_service, page_service, version_service
from pagecraft.db.services.designer_service import DesignerPage, EditResult
from pagecraft.lib.errors import NotFoundError
from pagecraft.lib.tree import forest_to_dicts

IfMatch = Annotated[str | None, Parameter(header="If-Match")]
UserId = Annotated[str | None, Parameter(header="X-User-Id")]


def _unquote(token: str | None) -> str | None:
    if token and len(token) >= 2 and token[0] == token[-1] == '"':
        return token[1:-1]
    return token


def serialize_page(page: Page) -> dict[str, Any]:
    return {
        "id": str(page.id),
        "name": page.name,
        "title": page.title,
        "slug": page.slug,
        "description": page.description,
        "status": page.status,
        "parent_page_id": str(page.parent_page_id) if page.parent_page_id else None,
        "published_at": page.published_at.isoformat() if page.published_at else None,
        "published_by": page.published_by,
    }


def serialize_component(component: PageComponent) -> dict[str, Any]:
    return {
        "key": component.key,
        "type": component.type,
        "name": component.name,
        "parent_key": component.parent_key,
        "sort_order": component.sort_order,
        "column": component.grid_column,
        "column_span": component.grid_column_span,
        "row": component.grid_row,
        "row_span": component.grid_row_span,
        "properties": component.properties,
        "styles": component.styles,
        "content": component.content,
        "settings": component.settings,
        "responsive_settings": component.responsive_settings,
        "animation_settings": component.animation_settings,
        "interaction_settings": component.interaction_settings,
        "css_classes": component.css_classes,
        "custom_css": component.custom_css,
        "is_visible": component.is_visible,
        "is_locked": component.is_locked,
    }


def serialize_version(version: PageVersion, include_snapshot: bool = False) -> dict[str, Any]:
    data = {
        "version_number": version.version_number,
        "is_published": version.is_published,
        "published_at": version.published_at.isoformat() if version.published_at else None,
        "change_notes": version.change_notes,
        "created_by": version.created_by,
        "created_at": version.created_at.isoformat() if version.created_at else None,
    }
    if include_snapshot:
        data["snapshot"] = version.snapshot
    return data


def _designer_response(designer: DesignerPage, status_code: int = 200) -> Response:
    return Response(
        content={
            "page": serialize_page(designer.page),
            "components": forest_to_dicts(designer.forest.roots),
            "warnings": [
                {"key": w.key, "parent_key": w.parent_key, "reason": w.reason}
                for w in designer.warnings
            ],
            "token": designer.token,
        },
        status_code=status_code,
        headers={"ETag": f'"{designer.token}"'},
    )


def _edit_response(result: EditResult, status_code: int = 200) -> Response:
    content: dict[str, Any] = {"token": result.token}
    if result.component is not None:
        content["component"] = serialize_component(result.component)
    if result.keys is not None:
        content["keys"] = result.keys
    return Response(content=content, status_code=status_code, headers={"ETag": f'"{result.token}"'})


class DesignerController(Controller):
    path = "/designer"

    @get("/library")
    async def library(self, db_session: AsyncSession) -> dict:
        """Component library grouped by category."""
        categories = await designer_service.get_component_library(db_session)
        return {
            "categories": [
                {
                    "name": category.name,
                    "templates": [
                        {
                            "type": t.type,
                            "display_name": t.display_name,
                            "description": t.description,
                            "icon": t.icon,
                            "allow_children": t.allow_children,
                            "default_column_span": t.default_column_span,
                        }
                        for t in category.templates
                    ],
                }
                for category in categories
            ]
        }

    @post("/pages")
    async def create_page(self, db_session: AsyncSession, data: CreatePageIn, user_id: UserId = None) -> Response:
        page = await page_service.create_page(
            db_session,
            slug=data.slug,
            title=data.title,
            name=data.name,
            description=data.description,
            user_id=user_id,
        )
        designer = await designer_service.open_page(db_session, page.id)
        return _designer_response(designer, status_code=201)

    @get("/pages/by-slug/{slug:str}")
    async def open_page_by_slug(self, db_session: AsyncSession, slug: str) -> Response:
        page = await page_service.get_page_by_slug(db_session, slug)
        if page is None:
            raise NotFoundError(f"Page {slug!r} not found", slug=slug)
        return _designer_response(await designer_service.open_page(db_session, page.id))

    @get("/pages/{page_id:uuid}")
    async def open_page(self, db_session: AsyncSession, page_id: UUID) -> Response:
        return _designer_response(await designer_service.open_page(db_session, page_id))

    @put("/pages/{page_id:uuid}")
    async def save_page(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        data: SavePageIn,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        designer = await designer_service.save_page(
            db_session,
            page_id,
            _unquote(if_match),
            data.components,
            create_version=data.create_version,
            change_notes=data.change_notes,
            user_id=user_id,
        )
        return _designer_response(designer)

    @post("/pages/{page_id:uuid}/components")
    async def add_component(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        data: AddComponentIn,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.add_component(
            db_session,
            page_id,
            _unquote(if_match),
            data.type,
            parent_key=data.parent_key,
            index=data.index,
            placement=data.placement.to_placement() if data.placement else None,
            name=data.name,
            properties=data.properties,
            user_id=user_id,
        )
        return _edit_response(result, status_code=201)

    @patch("/pages/{page_id:uuid}/components/{key:str}")
    async def update_component(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        key: str,
        data: dict[str, Any],
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.update_component(
            db_session, page_id, _unquote(if_match), key, data, user_id=user_id
        )
        return _edit_response(result)

    @post("/pages/{page_id:uuid}/components/{key:str}/move", status_code=200)
    async def move_component(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        key: str,
        data: MoveComponentIn,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.move_component(
            db_session,
            page_id,
            _unquote(if_match),
            key,
            parent_key=data.parent_key,
            index=data.index,
            placement=data.placement.to_placement() if data.placement else None,
            user_id=user_id,
        )
        return _edit_response(result)

    @post("/pages/{page_id:uuid}/components/{key:str}/duplicate")
    async def duplicate_component(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        key: str,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.duplicate_component(
            db_session, page_id, _unquote(if_match), key, user_id=user_id
        )
        return _edit_response(result, status_code=201)

    @delete("/pages/{page_id:uuid}/components/{key:str}", status_code=200)
    async def delete_component(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        key: str,
        cascade: bool = False,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        """Soft-delete a component; ``?cascade=true`` removes its subtree too."""
        result = await designer_service.delete_component(
            db_session, page_id, _unquote(if_match), key, cascade=cascade, user_id=user_id
        )
        return _edit_response(result)

    @post("/pages/{page_id:uuid}/reorder", status_code=200)
    async def reorder(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        data: ReorderIn,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.reorder_components(
            db_session, page_id, _unquote(if_match), data.parent_key, data.keys, user_id=user_id
        )
        return _edit_response(result)

    @post("/pages/{page_id:uuid}/publish", status_code=200)
    async def publish(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        data: VersionIn | None = None,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        result = await designer_service.publish_page(
            db_session,
            page_id,
            _unquote(if_match),
            change_notes=data.change_notes if data else None,
            user_id=user_id,
        )
        return Response(
            content={
                "page": serialize_page(result.page),
                "version": serialize_version(result.version),
                "token": result.token,
            },
            headers={"ETag": f'"{result.token}"'},
        )

    @post("/pages/{page_id:uuid}/unpublish", status_code=200)
    async def unpublish(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        designer = await designer_service.unpublish_page(
            db_session, page_id, _unquote(if_match), user_id=user_id
        )
        return _designer_response(designer)

    @get("/pages/{page_id:uuid}/versions")
    async def list_versions(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        limit: int | None = None,
    ) -> dict:
        await page_service.get_live_page(db_session, page_id)
        versions = await version_service.list_versions(db_session, page_id, limit=limit)
        return {
            "versions": [serialize_version(v) for v in versions],
            "total": await version_service.get_version_count(db_session, page_id),
        }

    @get("/pages/{page_id:uuid}/versions/{version_number:int}")
    async def get_version(self, db_session: AsyncSession, page_id: UUID, version_number: int) -> dict:
        version = await version_service.get_version(db_session, page_id, version_number)
        return serialize_version(version, include_snapshot=True)

    @post("/pages/{page_id:uuid}/versions")
    async def create_version(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        data: VersionIn | None = None,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> dict:
        version = await designer_service.snapshot_page(
            db_session,
            page_id,
            _unquote(if_match),
            change_notes=data.change_notes if data else None,
            user_id=user_id,
        )
        return serialize_version(version)

    @post("/pages/{page_id:uuid}/versions/{version_number:int}/restore", status_code=200)
    async def restore_version(
        self,
        db_session: AsyncSession,
        page_id: UUID,
        version_number: int,
        if_match: IfMatch = None,
        user_id: UserId = None,
    ) -> Response:
        designer = await designer_service.restore_page(
            db_session, page_id, _unquote(if_match), version_number, user_id=user_id
        )
        return _designer_response(designer)
