"""Unit tests for the ORM mapping configuration."""

import pytest
from sqlalchemy.orm import configure_mappers

from classroll.models import Base


@pytest.mark.unit
class TestRelationshipLoading:
    """Relationships either load eagerly or refuse implicit loads."""

    def test_loader_strategies(self) -> None:
        configure_mappers()

        strategies = {
            f"{mapper.class_.__name__}.{rel.key}": rel.lazy
            for mapper in Base.registry.mappers
            for rel in mapper.relationships
        }

        assert strategies
        assert set(strategies.values()) <= {"selectin", "raise"}, strategies

    def test_back_references_never_load_implicitly(self) -> None:
        configure_mappers()
        by_name = {mapper.class_.__name__: mapper for mapper in Base.registry.mappers}

        assert by_name["InvitationUsage"].relationships["invitation"].lazy == "raise"
        assert by_name["RegistrationStudent"].relationships["request"].lazy == "raise"
        assert by_name["School"].relationships["users"].lazy == "raise"
