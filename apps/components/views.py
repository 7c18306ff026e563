"""
JSON views for components and groups.

Public:
    GET /api/public/groups/

Admin:
    GET   /api/admin/components/
    GET   /api/admin/components/ungrouped/
    GET   /api/admin/components/<id>/
    PATCH /api/admin/components/<id>/
    GET|POST /api/admin/groups/
    PATCH    /api/admin/groups/<id>/
"""

import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.components.exceptions import InvalidStatusError, NotFoundError, TransactionFailure
from apps.components.models import Component
from apps.components.services import ComponentStore, GroupQueryService

logger = logging.getLogger(__name__)


class InvalidPayload(Exception):
    pass


def _error(message: str, status: int) -> JsonResponse:
    return JsonResponse({"status": "error", "message": message}, status=status)


def _parse_payload(request) -> dict:
    try:
        payload = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON payload: {e}")
        raise InvalidPayload("Invalid JSON payload") from e
    if not isinstance(payload, dict):
        raise InvalidPayload("Payload must be a JSON object")
    return payload


def _text_fields(payload: dict, require_name: bool = False) -> dict[str, str]:
    """Validated `name` and `description` values present in `payload`."""
    fields = {}
    if "name" in payload or require_name:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidPayload("name must be a non-empty string")
        fields["name"] = name.strip()
    if "description" in payload:
        description = payload["description"]
        if not isinstance(description, str):
            raise InvalidPayload("description must be a string")
        fields["description"] = description
    return fields


def _component_ids(payload: dict) -> list[int] | None:
    if "components" not in payload:
        return None
    ids = payload["components"]
    if not isinstance(ids, list) or not all(
        isinstance(cid, int) and not isinstance(cid, bool) for cid in ids
    ):
        raise InvalidPayload("components must be a list of component ids")
    return ids


def _handle(handler, *args) -> JsonResponse:
    """Call `handler` and map errors to HTTP status codes."""
    try:
        return handler(*args)
    except (InvalidPayload, InvalidStatusError) as e:
        return _error(str(e), status=400)
    except NotFoundError as e:
        return _error(str(e), status=404)
    except TransactionFailure as e:
        return _error(str(e), status=409)


class PublicGroupsView(View):
    """Groups with members and their computed status."""

    def get(self, request):
        groups = GroupQueryService.list_groups_with_status()
        return JsonResponse({"count": len(groups), "groups": groups})


class ComponentListView(View):
    def get(self, request):
        components = [c.to_dict() for c in ComponentStore().all()]
        return JsonResponse({"count": len(components), "components": components})


class UngroupedComponentListView(View):
    def get(self, request):
        components = [c.to_dict() for c in GroupQueryService.list_ungrouped_components()]
        return JsonResponse({"count": len(components), "components": components})


@method_decorator(csrf_exempt, name="dispatch")
class ComponentDetailView(View):
    """
    Read or edit a single component.

    PATCH accepts {"name": ..., "description": ..., "status": ...}. A status
    change is applied through ComponentStore so it is versioned and recorded,
    and it commits together with any name or description edit.
    """

    def get(self, request, component_id):
        component = Component.objects.filter(pk=component_id).first()
        if component is None:
            return _error(f"Component {component_id} not found", status=404)
        return JsonResponse(component.to_dict())

    def patch(self, request, component_id):
        return _handle(self._patch, request, component_id)

    def _patch(self, request, component_id):
        payload = _parse_payload(request)
        fields = _text_fields(payload)
        if "status" in payload and not isinstance(payload["status"], str):
            raise InvalidPayload("status must be a string")
        component, change = ComponentStore().edit(
            component_id, status=payload.get("status"), fields=fields
        )
        data = component.to_dict()
        if change is not None:
            data["status_change"] = change.to_dict()
        return JsonResponse(data)


@method_decorator(csrf_exempt, name="dispatch")
class GroupListView(View):
    """
    List or create groups.

    POST body:
        {"name": ..., "description": ..., "components": [1, 2]}
    """

    def get(self, request):
        groups = GroupQueryService.list_groups_with_status()
        return JsonResponse({"count": len(groups), "groups": groups})

    def post(self, request):
        return _handle(self._create, request)

    def _create(self, request):
        payload = _parse_payload(request)
        fields = _text_fields(payload, require_name=True)
        group = GroupQueryService.create_group(
            fields["name"],
            description=fields.get("description", ""),
            component_ids=_component_ids(payload),
        )
        return JsonResponse(group, status=201)


@method_decorator(csrf_exempt, name="dispatch")
class GroupDetailView(View):
    """PATCH accepts {"name": ..., "description": ..., "components": [...]}."""

    def patch(self, request, group_id):
        return _handle(self._patch, request, group_id)

    def _patch(self, request, group_id):
        payload = _parse_payload(request)
        group = GroupQueryService.update_group(
            group_id,
            fields=_text_fields(payload),
            component_ids=_component_ids(payload),
        )
        return JsonResponse(group)
