"""
State Decoder Module
====================

Parses Terraform state documents into flat resource descriptors.

A state document is a versioned JSON envelope organised as modules →
resources → instances. Each instance may carry a current generation with
an attribute blob. Only the ``id`` and ``arn`` attributes are read.

Supported versions
------------------
4
    Current format. ``resources[]`` carry their module address. Instances
    with a ``deposed`` key are not current and are skipped.
3
    Legacy format. ``modules[].resources{}`` where ``primary`` is the
    current generation and ``attributes`` is a flat string map.

Functions
---------
decode_state
    Decode a readable stream into a list of ResourceDescriptor.
load_state_file
    Decode the state file at a local path.

Example
-------
>>> from tfstate_index.state.decoder import load_state_file
>>>
>>> for descriptor in load_state_file("cache/bucket/prod/terraform.tfstate"):
...     print(descriptor.id, descriptor.arn or "-")
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import IO, Any, Dict, Iterable, List, Optional, Union

from tfstate_index.core.exceptions import DecodeError

# Module logger
logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (3, 4)
ROOT_MODULE = ""
MANAGED_MODE = "managed"

# Resource types retained even though they expose no arn attribute
DEFAULT_ARNLESS_RESOURCE_TYPES = frozenset(
    {
        "aws_iam_access_key",
        "aws_route53_record",
        "aws_route53_zone",
    }
)


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    A managed resource instance extracted from a state document.

    Attributes
    ----------
    id : str
        The provider's resource identifier. Index identity.
    arn : str
        The resource ARN, or ``""`` for ARN-less resource types.
    resource_type : str
        Terraform resource type, e.g. ``aws_instance``.
    address : str
        Full Terraform address, e.g. ``module.vpc.aws_subnet.private[0]``.
    """

    id: str
    arn: str = ""
    resource_type: str = ""
    address: str = ""

    @property
    def unique_id(self) -> str:
        return self.id

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "arn": self.arn,
            "resource_type": self.resource_type,
            "address": self.address,
        }


@dataclass
class StateInstance:
    """One instance of a resource. ``attributes`` is only meaningful when current."""

    index_key: Any = None
    is_current: bool = False
    attributes: Any = None


@dataclass
class StateResource:
    mode: str
    type: str
    name: str
    instances: List[StateInstance] = field(default_factory=list)


@dataclass
class StateModule:
    address: str = ROOT_MODULE
    resources: List[StateResource] = field(default_factory=list)


def _resource_address(module: str, resource: StateResource, index_key: Any) -> str:
    address = f"{resource.type}.{resource.name}"
    if resource.mode != MANAGED_MODE:
        address = f"{resource.mode}.{address}"
    if isinstance(index_key, int):
        address = f"{address}[{index_key}]"
    elif index_key is not None:
        address = f'{address}["{index_key}"]'
    if module:
        address = f"{module}.{address}"
    return address


def _as_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"State field '{what}' must be a list")
    return value


def _as_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise DecodeError(f"State field '{what}' must be an object")
    return value


def _as_str(value: Any, what: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise DecodeError(
            f"State field '{what}' must be a string, got {type(value).__name__}"
        )
    return value


def _parse_v4(document: Dict[str, Any]) -> List[StateModule]:
    """Group v4 resources into modules, keeping first-seen module order."""
    modules: Dict[str, StateModule] = {}
    for raw in _as_list(document.get("resources"), "resources"):
        raw = _as_dict(raw, "resources[]")
        module_address = _as_str(raw.get("module"), "resources[].module") or ROOT_MODULE
        resource = StateResource(
            mode=_as_str(raw.get("mode"), "resources[].mode", MANAGED_MODE),
            type=_as_str(raw.get("type"), "resources[].type"),
            name=_as_str(raw.get("name"), "resources[].name"),
        )
        for instance in _as_list(raw.get("instances"), "resources[].instances"):
            instance = _as_dict(instance, "resources[].instances[]")
            if "attributes" in instance:
                attributes = instance["attributes"]
            else:
                attributes = instance.get("attributes_flat", {})
            resource.instances.append(
                StateInstance(
                    index_key=instance.get("index_key"),
                    is_current="deposed" not in instance,
                    attributes=attributes,
                )
            )

        module = modules.setdefault(module_address, StateModule(address=module_address))
        module.resources.append(resource)
    return list(modules.values())


def _parse_v3(document: Dict[str, Any]) -> List[StateModule]:
    modules: List[StateModule] = []
    for raw_module in _as_list(document.get("modules"), "modules"):
        raw_module = _as_dict(raw_module, "modules[]")
        path = [p for p in _as_list(raw_module.get("path"), "modules[].path") if p != "root"]
        module = StateModule(address="".join(f"module.{p}." for p in path).rstrip("."))

        resources = raw_module.get("resources") or {}
        for key, raw in _as_dict(resources, "modules[].resources").items():
            raw = _as_dict(raw, f"modules[].resources.{key}")
            mode = MANAGED_MODE
            name_part = key
            if key.startswith("data."):
                mode = "data"
                name_part = key[len("data."):]
            # "aws_instance.web" or "aws_instance.web.2" for counted resources
            parts = name_part.split(".")
            index_key = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else None
            resource = StateResource(
                mode=mode,
                type=_as_str(raw.get("type"), f"modules[].resources.{key}.type") or parts[0],
                name=parts[1] if len(parts) > 1 else "",
            )

            primary = raw.get("primary")
            attributes = None
            if primary is not None:
                primary = _as_dict(primary, f"modules[].resources.{key}.primary")
                attributes = primary.get("attributes") or {}
                if isinstance(attributes, dict) and "id" not in attributes and "id" in primary:
                    attributes = dict(attributes, id=primary["id"])
            resource.instances.append(
                StateInstance(
                    index_key=index_key,
                    is_current=primary is not None,
                    attributes=attributes,
                )
            )
            module.resources.append(resource)
        modules.append(module)
    return modules


def _decode_attributes(blob: Any, address: str) -> Dict[str, Any]:
    """Turn an instance's attribute blob into a dictionary."""
    if isinstance(blob, (str, bytes)):
        try:
            blob = json.loads(blob)
        except (ValueError, RecursionError) as e:
            raise DecodeError(
                f"Malformed attribute JSON: {e}", address=address
            ) from e
    if not isinstance(blob, dict):
        raise DecodeError(
            f"Attributes must be an object, got {type(blob).__name__}",
            address=address,
        )
    return blob


def _extract(
    modules: Iterable[StateModule],
    arnless_types: frozenset,
) -> List[ResourceDescriptor]:
    output: List[ResourceDescriptor] = []
    for module in modules:
        for resource in module.resources:
            if resource.mode != MANAGED_MODE:
                continue

            for instance in resource.instances:
                # no current generation: deposed or already destroyed
                if not instance.is_current:
                    continue

                address = _resource_address(module.address, resource, instance.index_key)
                attributes = _decode_attributes(instance.attributes, address)

                resource_id = attributes.get("id")
                if not isinstance(resource_id, str) or not resource_id:
                    raise DecodeError("Resource has no 'id' attribute", address=address)

                arn = attributes.get("arn")
                if arn is None:
                    if resource.type not in arnless_types:
                        continue
                    arn = ""
                elif not isinstance(arn, str):
                    raise DecodeError("Attribute 'arn' must be a string", address=address)

                output.append(
                    ResourceDescriptor(
                        id=resource_id,
                        arn=arn,
                        resource_type=resource.type,
                        address=address,
                    )
                )
    return output


def decode_state(
    stream: IO,
    arnless_types: Optional[Iterable[str]] = None,
) -> List[ResourceDescriptor]:
    """
    Decode a state document into resource descriptors.

    Parameters
    ----------
    stream : file-like
        Readable text or binary stream holding the JSON document.
    arnless_types : iterable of str, optional
        Resource types kept without an ``arn`` attribute, in addition to
        :data:`DEFAULT_ARNLESS_RESOURCE_TYPES`.

    Returns
    -------
    list of ResourceDescriptor
        One descriptor per retained current instance, in document order.

    Raises
    ------
    DecodeError
        If the envelope is malformed, the version is unsupported, an
        attribute blob is malformed, or a resource lacks an ``id``.

    Example
    -------
    >>> with open("terraform.tfstate", "rb") as f:
    ...     descriptors = decode_state(f, arnless_types=["aws_ssm_parameter"])
    """
    allowed = DEFAULT_ARNLESS_RESOURCE_TYPES | frozenset(arnless_types or ())

    try:
        document = json.load(stream)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"State document is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise DecodeError("State document must be a JSON object")

    version = document.get("version")
    if version not in SUPPORTED_VERSIONS:
        raise DecodeError(
            f"Unsupported state version: {version!r}",
            details={"supported": list(SUPPORTED_VERSIONS)},
        )

    modules = _parse_v4(document) if version == 4 else _parse_v3(document)
    return _extract(modules, allowed)


def load_state_file(
    path: Union[str, os.PathLike],
    arnless_types: Optional[Iterable[str]] = None,
) -> List[ResourceDescriptor]:
    """
    Decode the state file at ``path``.

    Raises
    ------
    DecodeError
        If the file is unreadable or its content fails to decode. The
        error carries the path.
    """
    try:
        with open(path, "rb") as f:
            descriptors = decode_state(f, arnless_types=arnless_types)
    except OSError as e:
        raise DecodeError(f"Unable to read state file: {e}", path=str(path)) from e
    except DecodeError as e:
        if e.path is None:
            e.path = str(path)
            e.details["path"] = str(path)
        raise

    logger.debug("Decoded %d resources from %s", len(descriptors), path)
    return descriptors
