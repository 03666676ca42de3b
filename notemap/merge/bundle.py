"""Parse exported project files into an :class:`ImportBundle`."""

from __future__ import annotations

import json
from typing import Any, Union

from notemap.errors import InvalidFormat
from notemap.models import ImportBundle, Project

DEFAULT_BUNDLE_VERSION = "1.0"


def parse_bundle_data(data: Any) -> ImportBundle:
    """Validate an already-decoded JSON document and build the bundle.

    Raises:
        InvalidFormat: If ``project`` or ``project.name`` is missing, or any
            entity has the wrong shape.
    """
    if not isinstance(data, dict):
        raise InvalidFormat("Import file must contain a JSON object")
    raw_project = data.get("project")
    if not isinstance(raw_project, dict):
        raise InvalidFormat("Import file has no 'project' section")
    name = raw_project.get("name")
    if not isinstance(name, str) or not name:
        raise InvalidFormat("Import file project has no name")

    try:
        project = Project.from_dict(raw_project)
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise InvalidFormat(f"Import file is malformed: {exc}") from exc

    return ImportBundle(
        version=str(data.get("version") or DEFAULT_BUNDLE_VERSION),
        project=project,
    )


def parse_bundle(raw: Union[bytes, str]) -> ImportBundle:
    """Decode file bytes as UTF-8 JSON and parse the bundle.

    A leading byte-order mark is tolerated.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidFormat("Import file is not valid UTF-8") from exc
    else:
        text = raw.lstrip("\ufeff")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidFormat(f"Import file is not valid JSON: {exc.msg}") from exc

    return parse_bundle_data(data)
