"""Firestore collection names.

Firestore has no DDL; collections appear on first write. These constants are
the single source of truth for the document layout.
"""

ORGANIZATIONS = "organizations"
ORGANIZATION_REQUESTS = "organizationRequests"
USERS = "users"
FOLLOWS = "follows"
SCHEDULED_ALERTS = "scheduledAlerts"
GROUP_INVITATIONS = "groupInvitations"

# Subcollections
GROUPS = "groups"
MEMBERS = "members"
ALERTS = "alerts"
FOLLOWERS = "followers"
GROUP_PREFERENCES = "groupPreferences"


def organization_path(org_id: str) -> str:
    return f"{ORGANIZATIONS}/{org_id}"


def groups_path(org_id: str) -> str:
    return f"{ORGANIZATIONS}/{org_id}/{GROUPS}"


def group_path(org_id: str, group_id: str) -> str:
    return f"{groups_path(org_id)}/{group_id}"


def group_members_path(org_id: str, group_id: str) -> str:
    return f"{group_path(org_id, group_id)}/{MEMBERS}"


def alerts_path(org_id: str) -> str:
    return f"{ORGANIZATIONS}/{org_id}/{ALERTS}"


def followers_path(org_id: str) -> str:
    return f"{ORGANIZATIONS}/{org_id}/{FOLLOWERS}"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def group_preferences_path(user_id: str, org_id: str) -> str:
    return f"{USERS}/{user_id}/{GROUP_PREFERENCES}/{org_id}"


def follow_edge_id(user_id: str, org_id: str) -> str:
    """Deterministic id of the follow edge, so a second follow hits the same document."""
    return f"{user_id}__{org_id}"


def follow_path(user_id: str, org_id: str) -> str:
    return f"{FOLLOWS}/{follow_edge_id(user_id, org_id)}"
