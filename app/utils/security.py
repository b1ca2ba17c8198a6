"""
Request identity: resolves the acting principal for a request.

Token verification is handled by the identity provider in front of the API;
by the time a request reaches us it carries the principal id in X-Actor-Id.
"""

import logging
from typing import Optional

from fastapi import Depends, Header

from app.core.errors import ErrorCode, PolicyError
from app.models.principal import Principal
from app.services.principal_service import PrincipalService, get_principal_service

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Actor-Id"


def get_actor_id(x_actor_id: Optional[str] = Header(None, alias=ACTOR_HEADER)) -> str:
    """
    Read the acting principal id from the request headers.

    Raises:
        PolicyError(Unauthorized): header missing or blank
    """
    if not x_actor_id or not x_actor_id.strip():
        raise PolicyError(ErrorCode.UNAUTHORIZED)
    return x_actor_id.strip()


def get_current_actor(
    actor_id: str = Depends(get_actor_id),
    principals: PrincipalService = Depends(get_principal_service)
) -> Principal:
    """
    Resolve the acting principal. Inactive principals are returned as-is;
    the policy evaluator refuses them.
    """
    return principals.resolve_actor(actor_id)
