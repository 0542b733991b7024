"""Cancellation policy router."""

from fastapi import APIRouter

from ..core.dependencies import PolicyServiceDependency
from ..schemas.policy import CancellationPolicy, CreatePolicyRequest, ListPoliciesRequest, PolicyIdRequest
from ..services.cancellation_policy import CancellationPolicyService

router = APIRouter(prefix="/v1/policy", tags=["policy"])


@router.post("/create", response_model=CancellationPolicy)
async def create_policy(
    request: CreatePolicyRequest,
    policy_service: CancellationPolicyService = PolicyServiceDependency,
) -> CancellationPolicy:
    """
    Create a cancellation policy.

    Policies without a property are the global fallback for bookings whose
    property has no active policy of its own.
    """
    policy = await policy_service.create_policy(request)
    return CancellationPolicy.model_validate(policy)


@router.post("/get", response_model=CancellationPolicy)
async def get_policy(
    request: PolicyIdRequest,
    policy_service: CancellationPolicyService = PolicyServiceDependency,
) -> CancellationPolicy:
    policy = await policy_service.get_policy_or_raise(request.policy_id)
    return CancellationPolicy.model_validate(policy)


@router.post("/list", response_model=list[CancellationPolicy])
async def list_policies(
    request: ListPoliciesRequest,
    policy_service: CancellationPolicyService = PolicyServiceDependency,
) -> list[CancellationPolicy]:
    policies = await policy_service.list_policies(request.property_id, request.include_inactive)
    return [CancellationPolicy.model_validate(policy) for policy in policies]


@router.post("/deactivate", response_model=CancellationPolicy)
async def deactivate_policy(
    request: PolicyIdRequest,
    policy_service: CancellationPolicyService = PolicyServiceDependency,
) -> CancellationPolicy:
    """Deactivate a policy; bookings that reference it keep using it."""
    policy = await policy_service.deactivate_policy(request.policy_id)
    return CancellationPolicy.model_validate(policy)
