"""
Seed Permissions and Roles Script
Populates the roles, permissions and role_permissions tables read by the RBAC
catalog store, using the matrix in app.config.permissions_config.
Run after changing the matrix: python -m app.scripts.seed_permissions_roles
"""

import sys
from typing import Dict, FrozenSet, List

from app.config.permissions_config import PERMISSION_MATRIX
from app.database.supabase_client import get_service_supabase
from app.modules.rbac.engine import ROLE_TIERS
from app.modules.rbac.models import BOARD_ROLES, Role
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def check_tier_monotonicity(matrix: dict) -> List[str]:
    """
    Every role must hold the permissions of each board role on a lower tier,
    otherwise inheriting a higher workspace role could weaken board access.
    Returns a list of violations.
    """
    granted: Dict[str, FrozenSet[str]] = {r["name"]: frozenset(r["permissions"]) for r in matrix["roles"]}
    violations = []
    for role in Role:
        if role.value not in granted:
            violations.append(f"role {role.value} is missing from the matrix")
            continue
        for lower in BOARD_ROLES:
            if ROLE_TIERS[lower] >= ROLE_TIERS[role] or lower.value not in granted:
                continue
            missing = granted[lower.value] - granted[role.value]
            if missing:
                violations.append(f"{role.value} lacks {', '.join(sorted(missing))} held by {lower.value}")
    return violations


def seed_permissions(supabase: Client):
    """Seed permissions from config"""
    logger.info("Seeding permissions...")

    created_count = 0
    updated_count = 0

    for perm in PERMISSION_MATRIX["permissions"]:
        try:
            existing = supabase.table("permissions")\
                .select("id")\
                .eq("name", perm["name"])\
                .execute()

            fields = {
                "resource": perm["resource"],
                "action": perm["action"],
                "description": perm["description"]
            }
            if existing.data:
                supabase.table("permissions")\
                    .update(fields)\
                    .eq("name", perm["name"])\
                    .execute()
                updated_count += 1
                logger.debug(f"Updated permission: {perm['name']}")
            else:
                supabase.table("permissions").insert(dict(fields, name=perm["name"])).execute()
                created_count += 1
                logger.debug(f"Created permission: {perm['name']}")
        except Exception as e:
            logger.error(f"Error processing permission {perm['name']}: {e}")

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


def seed_roles(supabase: Client):
    """Seed workspace and board roles from config"""
    logger.info("Seeding roles...")

    created_count = 0
    updated_count = 0

    for role in PERMISSION_MATRIX["roles"]:
        try:
            existing = supabase.table("roles")\
                .select("id")\
                .eq("name", role["name"])\
                .execute()

            if existing.data:
                supabase.table("roles")\
                    .update({"description": role["description"]})\
                    .eq("name", role["name"])\
                    .execute()
                role_id = existing.data[0]["id"]
                updated_count += 1
            else:
                result = supabase.table("roles").insert({
                    "name": role["name"],
                    "description": role["description"]
                }).execute()
                role_id = result.data[0]["id"]
                created_count += 1

            sync_role_permissions(supabase, role_id, role["name"], role["permissions"])
        except Exception as e:
            logger.error(f"Error processing role {role['name']}: {e}")

    logger.info(f"Roles seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


def sync_role_permissions(supabase: Client, role_id: str, role_name: str, permission_names: list):
    """Make role_permissions of a role match the config exactly"""
    try:
        permission_result = supabase.table("permissions")\
            .select("id")\
            .in_("name", permission_names)\
            .execute()

        if not permission_result.data:
            logger.warning(f"No permissions found for role {role_name}")
            return

        permission_ids = {p["id"] for p in permission_result.data}

        existing_result = supabase.table("role_permissions")\
            .select("permission_id")\
            .eq("role_id", role_id)\
            .execute()
        existing_permission_ids = {p["permission_id"] for p in existing_result.data} if existing_result.data else set()

        new_assignments = [
            {"role_id": role_id, "permission_id": pid}
            for pid in permission_ids - existing_permission_ids
        ]
        if new_assignments:
            supabase.table("role_permissions").insert(new_assignments).execute()
            logger.debug(f"Assigned {len(new_assignments)} permissions to role {role_name}")

        # Permissions no longer granted by the config
        stale = existing_permission_ids - permission_ids
        if stale:
            supabase.table("role_permissions")\
                .delete()\
                .eq("role_id", role_id)\
                .in_("permission_id", list(stale))\
                .execute()
            logger.debug(f"Removed {len(stale)} permissions from role {role_name}")
    except Exception as e:
        logger.error(f"Error assigning permissions to role {role_name}: {e}")


def main():
    """Validate the matrix, then seed permissions and roles"""
    violations = check_tier_monotonicity(PERMISSION_MATRIX)
    if violations:
        for violation in violations:
            logger.error(f"Permission matrix is not monotone over role tiers: {violation}")
        sys.exit(1)

    try:
        supabase = get_service_supabase()

        logger.info("Starting permissions and roles seeding...")
        perm_count = seed_permissions(supabase)
        # Roles reference permissions, so they go second
        role_count = seed_roles(supabase)

        logger.info(f"Seeding completed: {perm_count} permissions, {role_count} roles processed")
    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
