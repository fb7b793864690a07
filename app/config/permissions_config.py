"""
Permissions and Roles Configuration
This config defines the permission catalog for boards, lists, cards and workspaces
and the permissions granted by every workspace-scoped and board-scoped role.
Used by the seed script and, when RBAC_CATALOG_SOURCE=config, directly by the
resolution engine as its catalog.
"""

# Define modules and their actions
MODULES = {
    "boards": {
        "resource": "boards",
        "actions": ["create", "read", "update", "delete", "manage"],
        "description": "Board management"
    },
    "lists": {
        "resource": "lists",
        "actions": ["create", "read", "update", "delete", "archive"],
        "description": "List management"
    },
    "cards": {
        "resource": "cards",
        "actions": ["create", "read", "update", "delete", "assign", "move", "archive"],
        "description": "Card management"
    },
    "comments": {
        "resource": "comments",
        "actions": ["create", "read", "update", "delete", "moderate"],
        "description": "Card comments"
    },
    "members": {
        "resource": "members",
        "actions": ["invite", "remove", "read", "manage"],
        "description": "Board membership"
    },
    "labels": {
        "resource": "labels",
        "actions": ["create", "read", "update", "delete"],
        "description": "Board labels"
    },
    "checklists": {
        "resource": "checklists",
        "actions": ["create", "read", "update", "delete"],
        "description": "Card checklists"
    },
    "attachments": {
        "resource": "attachments",
        "actions": ["create", "read", "delete"],
        "description": "Card attachments"
    },
    "notifications": {
        "resource": "notifications",
        "actions": ["read", "manage"],
        "description": "Notifications"
    },
    "workspaces": {
        "resource": "workspaces",
        "actions": ["create", "read", "update", "delete", "manage"],
        "description": "Workspace administration"
    },
    "users": {
        "resource": "users",
        "actions": ["read", "update", "manage", "delete"],
        "description": "User profiles"
    },
    "reports": {
        "resource": "reports",
        "actions": ["read", "export"],
        "description": "Reports and analytics"
    },
    "system": {
        "resource": "system",
        "actions": ["admin", "backup", "maintenance"],
        "description": "System administration"
    }
}

# Descriptions that differ from the generated "<Action> <resource>" text
MODULE_SPECIFIC_PERMISSIONS = {
    "boards": {
        "read": "View boards and their content",
        "update": "Edit board details and settings",
        "manage": "Full board management including member management"
    },
    "lists": {
        "update": "Edit list details and reorder lists",
        "archive": "Archive/unarchive lists"
    },
    "cards": {
        "update": "Edit card content, due dates, labels",
        "assign": "Assign/unassign members to cards",
        "move": "Move cards between lists and boards",
        "archive": "Archive/unarchive cards"
    },
    "comments": {
        "update": "Edit own comments",
        "delete": "Delete own comments",
        "moderate": "Delete any comments"
    },
    "members": {
        "invite": "Invite new members to boards",
        "remove": "Remove members from boards",
        "manage": "Manage member roles and permissions"
    },
    "users": {
        "update": "Edit own profile",
        "manage": "Manage all users (admin only)",
        "delete": "Delete user accounts (admin only)"
    },
    "system": {
        "admin": "Full system administration access",
        "backup": "Perform system backups",
        "maintenance": "Perform system maintenance"
    }
}

ALL = "*"

# Board content every board role can at least read
_BOARD_READ = {
    "boards": ["read"],
    "lists": ["read"],
    "cards": ["read"],
    "comments": ["read"],
    "members": ["read"],
    "labels": ["read"],
    "checklists": ["read"],
    "attachments": ["read"],
    "notifications": ["read"],
    "users": ["read", "update"],
}

_BOARD_MEMBER = {
    "boards": ["read"],
    "lists": ["create", "read", "update"],
    "cards": ALL,
    "comments": ["create", "read", "update", "delete"],
    "members": ["read"],
    "labels": ["create", "read"],
    "checklists": ALL,
    "attachments": ALL,
    "notifications": ALL,
    "users": ["read", "update"],
}

_BOARD_ADMIN = {
    "boards": ["read", "update"],
    "lists": ALL,
    "cards": ALL,
    "comments": ALL,
    "members": ["invite", "remove", "read"],
    "labels": ALL,
    "checklists": ALL,
    "attachments": ALL,
    "notifications": ALL,
    "users": ["read", "update"],
}

_BOARD_OWNER = dict(_BOARD_ADMIN, boards=ALL, members=ALL)

# Role definitions. Scope follows the name: board_* roles are board-scoped,
# every other role is workspace-scoped.
ROLE_TYPES = {
    "admin": {
        "grants": {module: ALL for module in MODULES},
        "description": "System administrator with full access"
    },
    "workspace_admin": {
        "grants": dict(_BOARD_OWNER, workspaces=ALL, reports=["read"]),
        "description": "Workspace owner with full control over the workspace and its boards"
    },
    "workspace_moderator": {
        "grants": dict(
            _BOARD_MEMBER,
            workspaces=["create", "read", "update"],
            boards=["create", "read", "update"],
            lists=ALL,
            comments=ALL,
            members=ALL,
            labels=ALL,
            reports=["read"],
        ),
        "description": "Moderates workspace members and board content"
    },
    "workspace_member": {
        "grants": dict(_BOARD_MEMBER, workspaces=["create", "read"], boards=["create", "read"]),
        "description": "Regular workspace member"
    },
    "workspace_observer": {
        "grants": dict(_BOARD_READ, workspaces=["read"]),
        "description": "Read-only access to the workspace"
    },
    "board_owner": {
        "grants": _BOARD_OWNER,
        "description": "Board creator with full control over the board"
    },
    "board_admin": {
        "grants": _BOARD_ADMIN,
        "description": "Manages board content and invites or removes members"
    },
    "board_member": {
        "grants": _BOARD_MEMBER,
        "description": "Works on lists and cards of the board"
    },
    "board_observer": {
        "grants": _BOARD_READ,
        "description": "Read-only access to the board"
    }
}


def _expand_grants(grants):
    """Turn a {resource: actions | "*"} mapping into sorted permission names"""
    names = set()
    for resource, actions in grants.items():
        if actions == ALL:
            actions = MODULES[resource]["actions"]
        for action in actions:
            if action not in MODULES[resource]["actions"]:
                raise ValueError(f"Unknown action '{action}' for resource '{resource}'")
            names.add(f"{resource}:{action}")
    return sorted(names)


# Generate permission matrix
def get_permission_matrix():
    """
    Returns a dictionary with all permissions and their associated roles
    Format: {
        "permissions": [
            {"name": "boards:create", "resource": "boards", "action": "create", "description": "..."},
            ...
        ],
        "roles": [
            {
                "name": "board_owner",
                "description": "...",
                "permissions": ["boards:create", "boards:delete", ...]
            },
            ...
        ]
    }
    """
    permissions = []
    roles = []

    # Generate permissions for each module
    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]

        for action in module_config["actions"]:
            description = f"{action.capitalize()} {resource}"

            # Add module-specific description if available
            if action in MODULE_SPECIFIC_PERMISSIONS.get(module_name, {}):
                description = MODULE_SPECIFIC_PERMISSIONS[module_name][action]

            permissions.append({
                "name": f"{resource}:{action}",
                "resource": resource,
                "action": action,
                "description": description
            })

    for role_name, role_config in ROLE_TYPES.items():
        roles.append({
            "name": role_name,
            "description": role_config["description"],
            "permissions": _expand_grants(role_config["grants"])
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts and the config catalog
PERMISSION_MATRIX = get_permission_matrix()
