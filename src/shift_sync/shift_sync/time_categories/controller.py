from __future__ import annotations

from flask import Flask, request

from ..common.web import current_actor, json_body, ok
from ..container import Container
from ..core.constants import DEFAULT_CATEGORY_COLOR
from .model import NewTimeCategory


def register(app: Flask, container: Container) -> None:
    service = container.category_service

    @app.route("/api/time-categories", methods=["GET"], endpoint="list_time_categories")
    def list_time_categories():
        current_actor()
        active_only = request.args.get("active_only", "0").lower() in {"1", "true", "yes"}
        return ok(categories=service.list_categories(active_only=active_only))

    @app.route("/api/time-categories", methods=["POST"], endpoint="create_time_category")
    def create_time_category():
        actor = current_actor()
        data = json_body()
        category = service.create(
            NewTimeCategory(
                name=data.get("name", ""),
                min_hours=data.get("min_hours"),
                max_hours=data.get("max_hours"),
                pay_multiplier=data.get("pay_multiplier", 1.0),
                color=data.get("color") or DEFAULT_CATEGORY_COLOR,
            ),
            actor=actor,
        )
        return ok(201, message="Time category created", category=category)

    @app.route("/api/time-categories/<category_id>", methods=["GET"], endpoint="get_time_category")
    def get_time_category(category_id: str):
        current_actor()
        return ok(category=service.get(category_id))

    @app.route("/api/time-categories/<category_id>", methods=["PUT"], endpoint="update_time_category")
    def update_time_category(category_id: str):
        actor = current_actor()
        category = service.update(category_id, json_body(), actor=actor)
        return ok(message="Time category updated", category=category)

    @app.route("/api/time-categories/<category_id>", methods=["DELETE"], endpoint="deactivate_time_category")
    def deactivate_time_category(category_id: str):
        actor = current_actor()
        category = service.deactivate(category_id, actor=actor)
        return ok(message="Time category deactivated", category=category)

    @app.route("/api/time-categories/suggested", methods=["GET"], endpoint="suggested_time_categories")
    def suggested_time_categories():
        return ok(categories=service.suggested())

    @app.route("/api/time-categories/suggested", methods=["POST"], endpoint="create_suggested_time_categories")
    def create_suggested_time_categories():
        actor = current_actor()
        return ok(201, categories=service.create_suggested(actor=actor))

    @app.route("/api/time-categories/conflicts", methods=["GET"], endpoint="time_category_conflicts")
    def time_category_conflicts():
        current_actor()
        return ok(conflicts=service.detect_conflicts(), errors=service.configuration_errors())

    @app.route("/api/time-categories/preview", methods=["POST"], endpoint="preview_time_category")
    def preview_time_category():
        data = json_body()
        preview = service.preview(data.get("hours"), data.get("base_rate"))
        return ok(preview=preview)
