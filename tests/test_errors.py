"""
Tests for the error hierarchy and registry.yaml validation.
"""

import textwrap

import pytest

from dealdesk.core.errors import (
    CollaboratorTimeoutError,
    DealDeskError,
    EntityNotFoundError,
    UnknownToolError,
)
from dealdesk.core.errors.registry import ErrorRegistry, RegistryValidationError, error_registry


def write_registry(tmp_path, body):
    path = tmp_path / "registry.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


class TestErrorClasses:

    def test_default_codes(self):
        assert UnknownToolError("x").code == "DD-TOOL-001"
        assert EntityNotFoundError("Deal", "d").code == "DD-DEAL-001"
        assert CollaboratorTimeoutError("slow").code == "DD-COLL-002"
        assert DealDeskError("boom").code == "DD-SYS-001"

    def test_code_override(self):
        assert DealDeskError("x", code="DD-CONF-002").code == "DD-CONF-002"

    def test_invalid_code_format(self):
        with pytest.raises(ValueError):
            DealDeskError("x", code="conf-2")

    def test_message_and_context(self):
        e = EntityNotFoundError("Deal", "deal-9")
        assert str(e) == 'Deal with ID "deal-9" not found.'
        assert e.context == {"kind": "Deal", "entity_id": "deal-9"}


class TestErrorRegistry:

    def test_bundled_registry_loads(self):
        registry = ErrorRegistry()
        registry.load()
        assert "DD-CONF-003" in registry.codes()
        entry = registry.get("DD-COLL-002")
        assert entry.domain == "COLL"
        assert entry.retryable is True

    def test_every_default_code_is_registered(self):
        codes = set(error_registry.codes())
        for cls in (UnknownToolError, EntityNotFoundError, CollaboratorTimeoutError, DealDeskError):
            assert cls.default_code in codes

    def test_unknown_code(self):
        assert error_registry.get("DD-SYS-999") is None

    def test_domain_mismatch(self, tmp_path):
        path = write_registry(tmp_path, """
            errors:
              - code: DD-TOOL-001
                domain: ARG
                title: Mismatch
                severity: WARN
                retryable: false
                safe_message: x
        """)
        with pytest.raises(RegistryValidationError, match="doesn't match"):
            ErrorRegistry().load(path)

    def test_duplicate_code(self, tmp_path):
        entry = """
              - code: DD-SYS-001
                domain: SYS
                title: Internal
                severity: ERROR
                retryable: false
                safe_message: x
        """
        path = write_registry(tmp_path, "errors:" + entry + entry)
        with pytest.raises(RegistryValidationError, match="Duplicate"):
            ErrorRegistry().load(path)

    def test_missing_fields(self, tmp_path):
        path = write_registry(tmp_path, """
            errors:
              - code: DD-SYS-001
                domain: SYS
        """)
        with pytest.raises(RegistryValidationError, match="missing fields"):
            ErrorRegistry().load(path)
