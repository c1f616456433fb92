"""
Seed script for a demo tenant.

Run this script after database initialization to create:
- Organization "org1" with an owner and a regular member (m1)
- Application "billing" with invoice and payment resources
- Role "billing_approver" granted invoices:read and invoices:approve
- The billing_approver role assigned to m1

Usage:
    uv run python -m scripts.seed_demo
"""
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import get_db, init_db
from tenant_rbac.features.applications.service import ApplicationCatalog
from tenant_rbac.features.organizations.membership import MembershipResolver, normalize_member_payload
from tenant_rbac.features.organizations.models import Organization
from tenant_rbac.features.roles.service import RoleManager, RoleScope
from tenant_rbac.utils import get_logger


log = get_logger(__name__)


DEMO_ORGANIZATION_ID = "org1"

DEMO_MEMBERS = {
    "members": [
        {"id": "owner1", "user_id": "user-owner", "role": "owner"},
        {"id": "m1", "user_id": "user-m1", "role": "member"},
    ]
}

DEMO_CATALOGUE = {
    "invoices": ("Invoices", [("read", "Read"), ("approve", "Approve")]),
    "payments": ("Payments", [("read", "Read"), ("refund", "Refund")]),
}

DEMO_ROLES = {
    "billing_approver": {
        "name": "Billing Approver",
        "description": "Reads and approves invoices",
        "permissions": ["invoices:read", "invoices:approve"],
        "members": ["m1"],
    },
}


async def seed_catalogue(db: AsyncSession) -> tuple[str, dict[str, str]]:
    """
    Create the billing application and its resources/actions.
    
    Returns:
        (application ID, mapping of "resource:action" -> action ID)
    """
    catalog = ApplicationCatalog(db)
    application = await catalog.create_application(DEMO_ORGANIZATION_ID, key="billing", name="Billing")
    actions_map = {}
    for resource_key, (resource_name, actions) in DEMO_CATALOGUE.items():
        resource = await catalog.create_resource(
            DEMO_ORGANIZATION_ID, application.id, key=resource_key, name=resource_name
        )
        for action_key, action_name in actions:
            action = await catalog.create_action(
                DEMO_ORGANIZATION_ID, application.id, resource.id, key=action_key, name=action_name
            )
            actions_map[f"{resource_key}:{action_key}"] = action.id
            log.info(f"Created action billing:{resource_key}:{action_key}")
    return application.id, actions_map


async def seed_roles(db: AsyncSession, application_id: str, actions_map: dict[str, str]):
    """Create demo roles and assign them to members."""
    manager = RoleManager(db)
    scope = RoleScope(DEMO_ORGANIZATION_ID, application_id)
    for role_key, role_config in DEMO_ROLES.items():
        action_ids = []
        for permission in role_config["permissions"]:
            if permission in actions_map:
                action_ids.append(actions_map[permission])
            else:
                log.warning(f"Action '{permission}' not found for role '{role_key}'")
        
        role = await manager.create_role(
            scope,
            key=role_key,
            name=role_config["name"],
            description=role_config["description"],
            action_ids=action_ids,
        )
        log.info(f"Created role '{role_key}' with {role.action_count} actions")
        for member_id in role_config["members"]:
            await manager.assign_roles_to_member(scope, member_id, [role.id])
            log.info(f"Assigned '{role_key}' to member {member_id}")


async def main():
    """Main function to seed the demo tenant."""
    log.info("Starting demo seeding...")
    
    log.info("Initializing database tables...")
    await init_db()
    
    async for db in get_db():
        try:
            if await db.get(Organization, DEMO_ORGANIZATION_ID) is not None:
                log.info(f"Organization {DEMO_ORGANIZATION_ID} already exists, skipping")
                break
            
            db.add(Organization(id=DEMO_ORGANIZATION_ID, name="Demo Organization", slug="org1"))
            await db.commit()
            
            members = normalize_member_payload(DEMO_MEMBERS)
            await MembershipResolver(db).sync_members(DEMO_ORGANIZATION_ID, members)
            
            application_id, actions_map = await seed_catalogue(db)
            await seed_roles(db, application_id, actions_map)
            
            log.info("Demo seeding completed successfully!")
        
        except Exception as e:
            log.error(f"Error seeding demo tenant: {e}", exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
