# backoffice/core/dependencies.py

from typing import List

from fastapi import Header, HTTPException, status

from backoffice.audit.hooks import PostCommitHook, celery_audit_hook


def get_actor_id(x_actor_id: str = Header(..., alias="X-Actor-Id")) -> str:
    """
    Identity of the user performing the request. Authentication happens
    upstream; this service only records who acted.
    """
    actor_id = x_actor_id.strip()
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Actor-Id header is required"
        )
    return actor_id


def get_post_commit_hooks() -> List[PostCommitHook]:
    """Side effects run after a payment or credit transaction commits."""
    return [celery_audit_hook]
