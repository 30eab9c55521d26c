"""
Seed Policies Script - Inserts the default policy table into an organization
Run: python -m scripts.seed_policies <org-slug>
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.repositories.mongo_client import create_indexes
from app.repositories.organization_repo import OrganizationRepository
from app.services.policy_service import PolicyService


def seed(slug: str) -> None:
    create_indexes()
    organization = OrganizationRepository().get_organization_by_slug_or_raise(slug)

    policies = PolicyService().seed_default_policies(organization.org_id)
    print(f"{organization.name}: {len(policies)} policies")
    for policy in policies:
        limit = f"{policy.upper_limit:,.0f}" if policy.upper_limit is not None else "-"
        print(f"  {policy.position:>2}  {policy.expense_type:<24} {limit:>8}  {policy.eligibility or ''}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python -m scripts.seed_policies <org-slug>")
        sys.exit(1)
    seed(sys.argv[1])
