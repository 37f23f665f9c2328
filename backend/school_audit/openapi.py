"""Minimal deterministic OpenAPI spec for the audit endpoints.

Paths are generated from ROUTES so the document and the blueprint stay in step;
key order is fixed for stable hashing by scripts/generate_spec.py.
"""
from typing import Any, Dict, List, Tuple
from school_audit.constants.audit import ACTIONS, CATEGORIES
from school_audit.config.pagination import MAX_LIMIT

__all__ = ["build_openapi_spec"]

# (method, path, summary, response schema, extra params)
ROUTES: List[Tuple[str, str, str, str, List[str]]] = [
    ("get", "/audit/entries", "List audit entries visible to the caller", "EntryPage",
     ["CategoryParam", "ActionParam", "ActorIdParam", "DateFromParam", "DateToParam", "LimitParam", "OffsetParam"]),
    ("head", "/audit/entries", "Caching headers for the entry list", "EntryPage",
     ["CategoryParam", "ActionParam", "ActorIdParam", "DateFromParam", "DateToParam", "LimitParam", "OffsetParam"]),
    ("post", "/audit/entries", "Record an audit entry", "Created", []),
    ("get", "/audit/entries/recent", "Most recent entries", "EntryList", ["RecentLimitParam"]),
    ("get", "/audit/entries/{entry_id}", "Single audit entry", "EntryEnvelope", []),
    ("get", "/audit/categories/{category}/entries", "Entries in one category", "EntryList", []),
    ("get", "/audit/actors/{actor_id}/entries", "Entries recorded by one actor", "EntryList", ["OffsetParam"]),
    ("get", "/audit/stats", "Aggregate statistics", "Stats", []),
    ("get", "/audit/filters", "Filter options for the caller", "FilterOptions", []),
]

PATH_PARAMS = {
    "entry_id": {"type": "integer"},
    "category": {"type": "string"},
    "actor_id": {"type": "integer"},
}


def _ref(name: str, kind: str = "schemas") -> Dict[str, str]:
    return {"$ref": f"#/components/{kind}/{name}"}


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def _snapshot_schema() -> Dict[str, Any]:
    return {
        "nullable": True,
        "oneOf": [
            {"type": "object", "additionalProperties": True, "description": "Key/value snapshot"},
            {
                "type": "object",
                "properties": {"ChangedFields": {"type": "array", "items": _ref("FieldDiff")}},
                "required": ["ChangedFields"],
            },
        ],
    }


def _kind_schema() -> Dict[str, Any]:
    return {"type": "string", "nullable": True, "enum": ["key_value", "field_diff"],
            "description": "Snapshot shape declared at write time"}


def _schemas() -> Dict[str, Any]:
    entry_props = {
        "id": {"type": "integer"},
        "category": {"type": "string", "example": CATEGORIES[0]},
        "recordId": {"type": "integer"},
        "action": {"type": "string", "example": ACTIONS[0]},
        "description": {"type": "string", "nullable": True},
        "oldValue": _snapshot_schema(),
        "newValue": _snapshot_schema(),
        "oldValueKind": _kind_schema(),
        "newValueKind": _kind_schema(),
        "changedBy": {"type": "integer", "nullable": True},
        "userRole": {"type": "string", "nullable": True, "description": "Actor role at the time of the action"},
        "affectedUserName": {"type": "string", "nullable": True},
        "ipAddress": {"type": "string"},
        "changedAt": {"type": "string", "format": "date-time"},
        "actorName": {"type": "string", "nullable": True},
        "actorCurrentRole": {"type": "string", "nullable": True},
        "actionLabel": {"type": "string"},
        "actionColor": {"type": "string"},
        "categoryLabel": {"type": "string"},
        "actorDisplay": {"type": "string"},
    }
    entries = {"type": "array", "items": _ref("AuditEntry")}
    return {
        "FieldDiff": {
            "type": "object",
            "properties": {"field": {"type": "string"}, "oldValue": {}, "newValue": {}},
            "required": ["field"],
        },
        "AuditEntry": {
            "type": "object",
            "properties": entry_props,
            "required": ["id", "category", "recordId", "action", "ipAddress", "changedAt"],
        },
        "EntryPage": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"}, "entries": entries, "count": {"type": "integer"},
                "total": {"type": "integer"}, "limit": {"type": "integer"}, "offset": {"type": "integer"},
            },
            "required": ["success", "entries", "count", "total", "limit", "offset"],
        },
        "EntryList": {
            "type": "object",
            "properties": {"success": {"type": "boolean"}, "entries": entries, "count": {"type": "integer"}},
            "required": ["success", "entries", "count"],
        },
        "EntryEnvelope": {
            "type": "object",
            "properties": {"success": {"type": "boolean"}, "entry": _ref("AuditEntry")},
            "required": ["success", "entry"],
        },
        "Stats": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                "data": {
                    "type": "object",
                    "properties": {
                        "overall": {
                            "type": "object",
                            "properties": {
                                "totalCount": {"type": "integer"},
                                "distinctCategories": {"type": "integer"},
                                "distinctActors": {"type": "integer"},
                                "countsByAction": {"type": "object", "additionalProperties": {"type": "integer"}},
                                "countsByPeriod": {
                                    "type": "object",
                                    "properties": {p: {"type": "integer"} for p in ("today", "week", "month")},
                                },
                            },
                        },
                        "byCategory": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "category": {"type": "string"},
                                    "count": {"type": "integer"},
                                    "lastActivityAt": {"type": "string", "format": "date-time"},
                                },
                            },
                        },
                    },
                },
            },
        },
        "FilterOptions": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                "categories": {"type": "array", "items": {"type": "object"}},
                "actions": {"type": "array", "items": {"type": "object"}},
            },
        },
        "NewEntry": {
            "type": "object",
            "properties": {
                "category": {"type": "string"},
                "recordId": {"type": "integer"},
                "action": {"type": "string"},
                "actorId": {"type": "integer"},
                "description": {"type": "string"},
                "oldValue": _snapshot_schema(),
                "newValue": _snapshot_schema(),
                "oldValueKind": _kind_schema(),
                "newValueKind": _kind_schema(),
                "userRole": {"type": "string"},
                "affectedUserName": {"type": "string"},
                "ipAddress": {"type": "string"},
            },
            "required": ["category", "recordId", "action", "actorId"],
        },
        "Created": {
            "type": "object",
            "properties": {"success": {"type": "boolean"}, "message": {"type": "string"}, "id": {"type": "integer"}},
            "required": ["success", "id"],
        },
        "Error": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                "message": {"type": "string"},
                "error": {
                    "type": "object",
                    "properties": {
                        "status": {"type": "integer"}, "title": {"type": "string"}, "detail": {"type": "string"},
                    },
                },
            },
            "required": ["success", "message", "error"],
        },
    }


def _parameters() -> Dict[str, Any]:
    def q(name: str, schema: Dict[str, Any], desc: str = "") -> Dict[str, Any]:
        p = {"name": name, "in": "query", "schema": schema}
        if desc:
            p["description"] = desc
        return p

    return {
        "CategoryParam": q("category", {"type": "string", "enum": list(CATEGORIES)}),
        "ActionParam": q("action", {"type": "string"}, "Any action text; known values: " + ", ".join(ACTIONS)),
        "ActorIdParam": q("actorId", {"type": "integer"}),
        "DateFromParam": q("dateFrom", {"type": "string", "format": "date"}, "Inclusive, from 00:00 UTC"),
        "DateToParam": q("dateTo", {"type": "string", "format": "date"}, "Inclusive, whole day"),
        "LimitParam": q("limit", {"type": "integer", "default": 100, "maximum": MAX_LIMIT}),
        "RecentLimitParam": q("limit", {"type": "integer", "default": 20}),
        "OffsetParam": q("offset", {"type": "integer", "default": 0}),
    }


def _operation(method: str, path: str, summary: str, schema: str, params: List[str]) -> Dict[str, Any]:
    parameters: List[Dict[str, Any]] = []
    for seg in path.split("/"):
        if seg.startswith("{"):
            name = seg.strip("{}")
            parameters.append({"name": name, "in": "path", "required": True, "schema": PATH_PARAMS[name]})
    parameters.extend(_ref(p, "parameters") for p in params)
    ok = "201" if method == "post" else "200"
    ok_resp: Dict[str, Any] = {"description": "Created" if method == "post" else "OK"}
    if method != "head":
        ok_resp["content"] = {"application/json": {"schema": _ref(schema)}}
    responses: Dict[str, Any] = {ok: ok_resp, "401": {"description": "Missing or invalid token"}}
    if path == "/audit/entries" and method in ("get", "head"):
        ok_resp["headers"] = caching_headers()
        responses["304"] = {"description": "Not Modified", "headers": caching_headers()}
    if method == "post" or "{entry_id}" in path or "{category}" in path:
        responses["400"] = _ref("BadRequest", "responses")
    if "{entry_id}" in path or "{category}" in path:
        responses["403"] = _ref("Forbidden", "responses")
    if "{entry_id}" in path:
        responses["404"] = _ref("NotFound", "responses")
    rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "")
    op: Dict[str, Any] = {
        "summary": summary,
        "operationId": f"{method}_{rid}",
        "tags": ["Audit"],
        "parameters": parameters,
        "responses": responses,
    }
    if method == "post":
        op["requestBody"] = {"required": True, "content": {"application/json": {"schema": _ref("NewEntry")}}}
    return op


def build_openapi_spec() -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    for method, path, summary, schema, params in ROUTES:
        paths.setdefault(path, {})[method] = _operation(method, path, summary, schema, params)

    error_content = {"application/json": {"schema": _ref("Error")}}
    components: Dict[str, Any] = {
        "schemas": _schemas(),
        "parameters": _parameters(),
        "responses": {
            "BadRequest": {"description": "Bad Request", "content": error_content},
            "Forbidden": {"description": "Category outside the caller's role scope", "content": error_content},
            "NotFound": {"description": "Not Found", "content": error_content},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
    }
    return {
        "openapi": "3.0.3",
        "info": {"title": "School Audit API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": "Audit", "description": "Audit trail ingestion and role-scoped reporting"}],
    }
