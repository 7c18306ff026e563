"""
JSON views for incidents.

Public:
    GET /api/public/incidents/?onlyActive=true

Admin:
    GET|POST  /api/admin/incidents/
    GET|PATCH /api/admin/incidents/<id>/
    GET|POST  /api/admin/incidents/<id>/updates/
    POST      /api/admin/incidents/<id>/resolve/
"""

import json
import logging
from typing import Any

from django.http import JsonResponse
from django.utils.dateparse import parse_datetime
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.incidents.exceptions import (
    IncidentValidationError,
    NotFoundError,
    TransactionFailure,
)
from apps.incidents.services import IncidentEngine, IncidentQueryService

logger = logging.getLogger(__name__)

TRUTHY = ("1", "true", "yes", "on")


class InvalidPayload(Exception):
    pass


class JSONViewMixin:
    """Request parsing and error mapping shared by incident views."""

    def json_response(self, data: Any, status: int = 200) -> JsonResponse:
        return JsonResponse(data, status=status)

    def error_response(self, message: str, status: int = 400) -> JsonResponse:
        return JsonResponse({"status": "error", "message": message}, status=status)

    def parse_payload(self, request) -> dict:
        try:
            payload = json.loads(request.body or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Invalid JSON payload: {e}")
            raise InvalidPayload("Invalid JSON payload") from e
        if not isinstance(payload, dict):
            raise InvalidPayload("Payload must be a JSON object")
        return payload

    def run(self, handler, *args, **kwargs) -> JsonResponse:
        """Call `handler` and map domain errors to HTTP status codes."""
        try:
            return handler(*args, **kwargs)
        except InvalidPayload as e:
            return self.error_response(str(e), status=400)
        except IncidentValidationError as e:
            return self.error_response(str(e), status=400)
        except NotFoundError as e:
            return self.error_response(str(e), status=404)
        except TransactionFailure as e:
            return self.error_response(str(e), status=409)


def _parse_bound(value: str | None):
    """Parse a before/after query value; invalid values are ignored."""
    if not value:
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


def _only_active(request) -> bool:
    return request.GET.get("onlyActive", "").lower() in TRUTHY


def _incident_list_response(incidents) -> dict:
    data = [incident.to_dict() for incident in incidents]
    return {"count": len(data), "incidents": data}


class PublicIncidentListView(JSONViewMixin, View):
    def get(self, request):
        incidents = IncidentQueryService.list_incidents(only_active=_only_active(request))
        return self.json_response(_incident_list_response(incidents))


@method_decorator(csrf_exempt, name="dispatch")
class IncidentListView(JSONViewMixin, View):
    """
    List or create incidents.

    POST body:
        {"title": ..., "description": ..., "status": ..., "impact": ...,
         "affected_components": [{"id": 1, "status": "degraded"}]}
    """

    def get(self, request):
        incidents = IncidentQueryService.list_incidents(
            before=_parse_bound(request.GET.get("before")),
            after=_parse_bound(request.GET.get("after")),
            only_active=_only_active(request),
        )
        return self.json_response(_incident_list_response(incidents))

    def post(self, request):
        return self.run(self._create, request)

    def _create(self, request):
        payload = self.parse_payload(request)
        incident = IncidentEngine().create_incident(
            title=payload.get("title"),
            description=payload.get("description"),
            status=payload.get("status"),
            impact=payload.get("impact"),
            affected_components=payload.get("affected_components"),
        )
        return self.json_response(incident.to_dict(), status=201)


@method_decorator(csrf_exempt, name="dispatch")
class IncidentDetailView(JSONViewMixin, View):
    def get(self, request, incident_id):
        return self.run(
            lambda: self.json_response(IncidentQueryService.get_incident(incident_id).to_dict())
        )

    def patch(self, request, incident_id):
        return self.run(self._update, request, incident_id)

    def _update(self, request, incident_id):
        payload = self.parse_payload(request)
        incident = IncidentEngine().update_incident(
            incident_id,
            title=payload.get("title"),
            description=payload.get("description"),
            status=payload.get("status"),
            impact=payload.get("impact"),
            affected_components=payload.get("affected_components"),
        )
        return self.json_response(incident.to_dict())


@method_decorator(csrf_exempt, name="dispatch")
class IncidentUpdateListView(JSONViewMixin, View):
    """
    List an incident's updates (newest first) or post a new one.

    POST body:
        {"description": ..., "status": ..., "impact": ..., "type": ...,
         "component_updates": [{"id": 1, "status": "operational"}]}
    """

    def get(self, request, incident_id):
        return self.run(self._list, incident_id)

    def _list(self, incident_id):
        updates = [u.to_dict() for u in IncidentQueryService.list_updates(incident_id)]
        return self.json_response({"count": len(updates), "updates": updates})

    def post(self, request, incident_id):
        return self.run(self._post, request, incident_id)

    def _post(self, request, incident_id):
        payload = self.parse_payload(request)
        update = IncidentEngine().post_update(
            incident_id,
            description=payload.get("description"),
            status=payload.get("status"),
            impact=payload.get("impact"),
            component_updates=payload.get("component_updates"),
            update_type=payload.get("type"),
        )
        return self.json_response(update.to_dict(), status=201)


@method_decorator(csrf_exempt, name="dispatch")
class IncidentResolveView(JSONViewMixin, View):
    def post(self, request, incident_id):
        return self.run(self._resolve, request, incident_id)

    def _resolve(self, request, incident_id):
        payload = self.parse_payload(request)
        update = IncidentEngine().resolve(
            incident_id,
            description=payload.get("description"),
            component_updates=payload.get("component_updates"),
        )
        return self.json_response(update.to_dict(), status=201)
