"""Falcon ASGI application."""

import falcon.asgi
from falcon.asgi import App

from rolegate.application.engine.engine import AuthorizationEngine
from rolegate.application.use_cases.assignment.assign_role import AssignRoleUseCase
from rolegate.application.use_cases.assignment.revoke_assignment import RevokeAssignmentUseCase
from rolegate.application.use_cases.audit.export_audit_log import ExportAuditLogUseCase
from rolegate.application.use_cases.audit.query_audit_log import QueryAuditLogUseCase
from rolegate.application.use_cases.role.archive_role import ArchiveRoleUseCase
from rolegate.application.use_cases.role.clone_role import CloneRoleUseCase
from rolegate.application.use_cases.role.create_role import CreateRoleUseCase
from rolegate.application.use_cases.role.delete_role import DeleteRoleUseCase
from rolegate.application.use_cases.role.export_role import ExportRoleUseCase
from rolegate.application.use_cases.role.import_role import ImportRoleUseCase
from rolegate.application.use_cases.role.publish_role import PublishRoleUseCase
from rolegate.application.use_cases.role.update_role import UpdateRoleUseCase
from rolegate.interfaces.api.errors import register_error_handlers
from rolegate.interfaces.api.resources.assignments import AssignmentResource, AssignmentsResource
from rolegate.interfaces.api.resources.audit import AuditResource, AuditRiskResource
from rolegate.interfaces.api.resources.decisions import CheckResource, EffectivePermissionsResource
from rolegate.interfaces.api.resources.health import HealthResource
from rolegate.interfaces.api.resources.metrics import MetricsResource
from rolegate.interfaces.api.resources.roles import RoleResource, RolesResource


def create_app(engine: AuthorizationEngine, middleware: list | None = None) -> App:
    """Create Falcon ASGI app with use cases and routes around ``engine``."""
    resolver = engine.resolver
    role_graph = engine.role_graph
    assignments = engine.assignment_store

    create_role = CreateRoleUseCase(role_graph, resolver)
    update_role = UpdateRoleUseCase(role_graph, resolver)
    publish_role = PublishRoleUseCase(role_graph, resolver)
    archive_role = ArchiveRoleUseCase(role_graph, assignments, resolver)
    delete_role = DeleteRoleUseCase(role_graph, assignments, resolver)
    clone_role = CloneRoleUseCase(role_graph, resolver)
    export_role = ExportRoleUseCase(role_graph, resolver)
    import_role = ImportRoleUseCase(role_graph, resolver)
    assign_role = AssignRoleUseCase(assignments, resolver)
    revoke_assignment = RevokeAssignmentUseCase(assignments, resolver)
    query_audit_log = QueryAuditLogUseCase(engine.audit_log, resolver)
    export_audit_log = ExportAuditLogUseCase(engine.audit_log, resolver)

    health_resource = HealthResource(engine)
    check_resource = CheckResource(resolver)
    permissions_resource = EffectivePermissionsResource(resolver)
    roles_resource = RolesResource(role_graph, resolver, create_role, import_role)
    role_resource = RoleResource(
        role_graph,
        resolver,
        update_role,
        publish_role,
        archive_role,
        delete_role,
        clone_role,
        export_role,
    )
    assignments_resource = AssignmentsResource(assignments, resolver, assign_role)
    assignment_resource = AssignmentResource(revoke_assignment)
    audit_resource = AuditResource(query_audit_log, export_audit_log)
    risk_resource = AuditRiskResource(query_audit_log)

    app = falcon.asgi.App(middleware=middleware or [])
    register_error_handlers(app)
    app.add_route("/v1/health", health_resource)
    app.add_route("/v1/health/ready", health_resource, suffix="ready")
    app.add_route("/v1/metrics", MetricsResource())
    app.add_route("/v1/check", check_resource)
    app.add_route("/v1/check/batch", check_resource, suffix="batch")
    app.add_route("/v1/users/{user_id}/permissions", permissions_resource)
    app.add_route("/v1/roles", roles_resource)
    app.add_route("/v1/roles/import", roles_resource, suffix="import")
    app.add_route("/v1/roles/{role_id}", role_resource)
    app.add_route("/v1/roles/{role_id}/publish", role_resource, suffix="publish")
    app.add_route("/v1/roles/{role_id}/archive", role_resource, suffix="archive")
    app.add_route("/v1/roles/{role_id}/hierarchy", role_resource, suffix="hierarchy")
    app.add_route("/v1/roles/{role_id}/clone", role_resource, suffix="clone")
    app.add_route("/v1/roles/{role_id}/export", role_resource, suffix="export")
    app.add_route("/v1/assignments", assignments_resource)
    app.add_route("/v1/assignments/{assignment_id}", assignment_resource)
    app.add_route("/v1/audit", audit_resource)
    app.add_route("/v1/audit/export", audit_resource, suffix="export")
    app.add_route("/v1/audit/report", audit_resource, suffix="report")
    app.add_route("/v1/audit/risk/{user_id}", risk_resource)
    return app
