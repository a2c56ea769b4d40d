"""Default RBAC catalog.

``settings.RBAC`` overrides individual keys of ``DEFAULT_RBAC``; the merged
dict is validated once at start-up by ``RbacConfig.ready()``.
"""

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_HR_MANAGER = "hr_manager"
ROLE_MANAGER = "manager"
ROLE_PAYROLL = "payroll"
ROLE_HR = "hr"
ROLE_EMPLOYEE = "employee"

WILDCARD = "*"

DEFAULT_RBAC = {
    # Higher roles inherit everything granted to the roles they list.
    "ROLE_HIERARCHY": {
        ROLE_SUPER_ADMIN: [
            ROLE_ADMIN,
            ROLE_HR_MANAGER,
            ROLE_MANAGER,
            ROLE_PAYROLL,
            ROLE_HR,
            ROLE_EMPLOYEE,
        ],
        ROLE_ADMIN: [ROLE_HR_MANAGER, ROLE_MANAGER, ROLE_PAYROLL, ROLE_HR, ROLE_EMPLOYEE],
        ROLE_HR_MANAGER: [ROLE_HR, ROLE_MANAGER, ROLE_EMPLOYEE],
        ROLE_MANAGER: [ROLE_EMPLOYEE],
        ROLE_PAYROLL: [ROLE_EMPLOYEE],
        ROLE_HR: [ROLE_EMPLOYEE],
        ROLE_EMPLOYEE: [],
    },
    "PERMISSION_PATTERNS": {
        ROLE_SUPER_ADMIN: [WILDCARD],
        ROLE_ADMIN: [WILDCARD],
        ROLE_HR_MANAGER: [
            "*:leave_request",
            "*:leave_approval",
            "*:leave_balance",
            "*:user",
            "read:audit_log",
        ],
        ROLE_MANAGER: ["read:*", "approve:leave_request"],
        ROLE_PAYROLL: ["read:user", "read:leave_balance"],
        ROLE_HR: ["*:leave_request", "read:user", "read:leave_balance"],
        ROLE_EMPLOYEE: [
            "read:leave_request:own",
            "create:leave_request",
            "cancel:leave_request",
            "read:leave_balance:own",
        ],
    },
    # Concrete permission rows seeded by ``setup_rbac``: (name, category, description).
    "PERMISSIONS": [
        ("read:leave_request:own", "leave", "View own leave requests"),
        ("read:leave_request:all", "leave", "View all leave requests"),
        ("create:leave_request", "leave", "Submit leave requests"),
        ("approve:leave_request", "leave", "Decide on leave requests"),
        ("cancel:leave_request", "leave", "Cancel own pending leave requests"),
        ("read:leave_balance:own", "leave", "View own leave balance"),
        ("read:leave_balance:all", "leave", "View every leave balance"),
        ("update:leave_balance", "leave", "Manually adjust leave balances"),
        ("read:user", "user", "View users"),
        ("read:audit_log", "audit", "View the audit log"),
        ("manage:role", "system", "Manage roles"),
        ("manage:permission", "system", "Manage permissions"),
    ],
    "ADMIN_ROLES": [ROLE_ADMIN, ROLE_SUPER_ADMIN],
    "WILDCARD": WILDCARD,
    # resource type -> model label, owner field, department lookup
    "RESOURCE_RULES": {
        "user": {
            "model": "users.User",
            "owner_field": "id",
            "department_field": "department",
        },
        "leave_request": {
            "model": "leaves.LeaveRequest",
            "owner_field": "user_id",
            "department_field": "user__department",
        },
        "leave_approval": {
            "model": "leaves.ApprovalWorkflowEntry",
            "owner_field": "approver_id",
            "department_field": None,
        },
        "leave_balance": {
            "model": "leaves.LeaveBalance",
            "owner_field": "user_id",
            "department_field": "user__department",
        },
    },
    # Only explicit grants or the administrator tier reach these.
    "PROTECTED_RESOURCES": ["role", "permission", "system_config"],
    "CACHE_BACKEND": "local",
    "CACHE_ALIAS": "default",
    "CACHE_TTL": 10 * 60,
    "CACHE_EVICTION_INTERVAL": 60.0,
    "LOOKUP_TIMEOUT": 5.0,
}
