"""Default role-list permission check for resource actions."""

from __future__ import annotations

from django.db.models import Q

from common.logging import get_logger

from .context import RequestContext
from .definitions import ResourceAction, ResourceDefinition, get_resource_definition
from .errors import Forbidden, NotFound
from .models import App

logger = get_logger(__name__)

PUBLIC_ROLE = "$public"
AUTHOR_ROLE = "$author"


def verify_resource_action_permission(
    context: RequestContext,
    app: App,
    resource_type: str,
    action: ResourceAction,
    *,
    definition: ResourceDefinition | None = None,
) -> Q:
    """Return the filter the acting member may see resources through.

    ``$public`` admits everyone, an empty role list admits any member,
    ``$author`` narrows reads and writes to the member's own resources.
    Raises :class:`Forbidden` when the member may not run ``action`` at all.
    """

    if definition is None:
        definition = get_resource_definition(app.definition, resource_type)
        if definition is None:
            raise NotFound(f"App does not have resources called {resource_type}")

    roles = definition.roles_for(action)
    member = context.member

    if PUBLIC_ROLE in roles:
        return Q()
    if member is None:
        logger.info("resources.permission.denied", app_id=app.pk, action=action)
        raise Forbidden("User is not logged in")
    if not roles or member.role in roles:
        return Q()
    if AUTHOR_ROLE in roles and action != "create":
        return Q(author=member)

    logger.info(
        "resources.permission.denied",
        app_id=app.pk,
        action=action,
        role=member.role,
    )
    raise Forbidden("User does not have sufficient permissions")
