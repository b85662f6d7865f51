"""Tests for deterministic container naming."""

import pytest

from stackctl.domain.errors import (
    DuplicateContainerNameError,
    InvalidServiceNameError,
    UnknownServiceError,
)
from stackctl.domain.naming import ContainerNameRegistry, container_name


class TestContainerName:
    def test_project_underscore_service(self) -> None:
        assert container_name("viewiemedia", "db") == "viewiemedia_db"

    def test_deterministic(self) -> None:
        assert container_name("p", "web") == container_name("p", "web")


class TestContainerNameRegistry:
    def test_resolve_known_service(self) -> None:
        reg = ContainerNameRegistry("viewiemedia", ["db", "cache", "web"])
        assert reg.resolve("db") == "viewiemedia_db"
        assert reg.resolve("web") == "viewiemedia_web"

    def test_unknown_service(self) -> None:
        reg = ContainerNameRegistry("viewiemedia", ["db"])
        with pytest.raises(UnknownServiceError) as exc_info:
            reg.resolve("queue")
        assert exc_info.value.detail["service"] == "queue"
        assert "known: db" in exc_info.value.message

    def test_items_keep_declaration_order(self) -> None:
        reg = ContainerNameRegistry("p", ["web", "db"])
        assert reg.items() == [("web", "p_web"), ("db", "p_db")]
        assert reg.services == ["web", "db"]

    def test_contains(self) -> None:
        reg = ContainerNameRegistry("p", ["db"])
        assert "db" in reg
        assert "web" not in reg

    def test_case_folded_collision_rejected(self) -> None:
        with pytest.raises(DuplicateContainerNameError) as exc_info:
            ContainerNameRegistry("p", ["Web", "web"])
        assert exc_info.value.detail["services"] == ["Web", "web"]

    @pytest.mark.parametrize("name", ["", "-db", "my service", "db/primary"])
    def test_invalid_service_name(self, name: str) -> None:
        with pytest.raises(InvalidServiceNameError):
            ContainerNameRegistry("p", [name])

    def test_invalid_project_name(self) -> None:
        with pytest.raises(InvalidServiceNameError):
            ContainerNameRegistry("my project", ["db"])

    def test_distinct_services_never_collide(self) -> None:
        services = ["db", "db1", "db_1", "db.1", "db-1"]
        reg = ContainerNameRegistry("p", services)
        names = [reg.resolve(s) for s in services]
        assert len(set(names)) == len(names)
