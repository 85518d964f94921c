# This file is part of ds-identify. See LICENSE file for license information.
"""Schema for test-signals documents, which stand in for a host snapshot."""

import logging
import re
from typing import List, NamedTuple, Optional

LOG = logging.getLogger(__name__)

_STRING = {"type": "string"}
_FLAG = {"type": "boolean"}
_STRINGS = {"type": "array", "items": _STRING}

TEST_SIGNALS_SCHEMA = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "product_name": _STRING,
        "sys_vendor": _STRING,
        "product_serial": _STRING,
        "product_uuid": _STRING,
        "chassis_asset_tag": _STRING,
        "board_name": _STRING,
        "hypervisor_uuid": _STRING,
        "pid1_product_name": _STRING,
        "kernel_cmdline": _STRING,
        "virt": _STRING,
        "uname_kernel_name": _STRING,
        "uname_kernel_version": _STRING,
        "uname_machine": _STRING,
        "fs_labels": _STRINGS,
        "fs_uuids": _STRINGS,
        "iso9660_devs": {
            "type": "object",
            "additionalProperties": _STRING,
        },
        "cdrom_ovf": _STRINGS,
        "markers": {"type": "array", "items": _STRING, "uniqueItems": True},
        "cloud_info": _STRING,
        "ibm_provisioning": _FLAG,
        "vmware": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "env_guestinfo": _FLAG,
                "env_metadata": _FLAG,
                "env_userdata": _FLAG,
                "env_vendordata": _FLAG,
                "guestinfo_tool": _STRING,
                "guestinfo": {
                    "type": "object",
                    "additionalProperties": _STRING,
                },
            },
        },
        "config": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "datasource_list": {
                    "oneOf": [
                        {
                            "type": "array",
                            "items": {
                                "type": "string",
                                "pattern": "^[A-Za-z0-9_-]+$",
                            },
                        },
                        {"type": "null"},
                    ]
                },
                "datasource": {"type": "object"},
                "disable_vmware_customization": {},
                "policy": {"type": ["string", "null"]},
                "dsname": {"type": ["string", "null"]},
            },
        },
    },
}


class SchemaProblem(NamedTuple):
    path: str
    message: str

    def format(self) -> str:
        return f"{self.path}: {self.message}"


SchemaProblems = List[SchemaProblem]


def _format_schema_problems(
    schema_problems: SchemaProblems,
    *,
    prefix: Optional[str] = None,
    separator: str = ", ",
) -> str:
    formatted = separator.join(map(lambda p: p.format(), schema_problems))
    if prefix:
        formatted = f"{prefix}{formatted}"
    return formatted


class SchemaValidationError(ValueError):
    """Raised when a test-signals document does not match the schema."""

    def __init__(self, schema_errors: Optional[SchemaProblems] = None):
        """Init the exception with a list of SchemaProblems.

        @param schema_errors: An n-tuple of the format:
            ((flat.config.key, msg),)
        """
        self.schema_errors = sorted(set(schema_errors or []))
        super().__init__(
            _format_schema_problems(
                self.schema_errors, prefix="Test signals schema errors: "
            )
        )


def validate_test_signals(data, schema=None) -> None:
    """Validate data against the test-signals schema.

    @param data: the loaded document.
    @param schema: an alternative schema, mainly for testing.
    @raises SchemaValidationError: listing every problem found.
    """
    from jsonschema import Draft4Validator, FormatChecker

    if schema is None:
        schema = TEST_SIGNALS_SCHEMA
    validator = Draft4Validator(schema, format_checker=FormatChecker())
    errors: SchemaProblems = []
    for schema_error in sorted(
        validator.iter_errors(data),
        key=lambda e: [str(p) for p in e.path],
    ):
        path = ".".join([str(p) for p in schema_error.path])
        if not path and schema_error.validator == "additionalProperties":
            # an invalid top-level property
            prop_match = re.match(
                r".*\('(?P<name>.*)' was unexpected\)", schema_error.message
            )
            if prop_match:
                path = prop_match["name"]
        errors.append(SchemaProblem(path, schema_error.message))
    if errors:
        LOG.debug("Test signals failed validation: %s", errors)
        raise SchemaValidationError(errors)
