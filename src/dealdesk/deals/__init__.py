"""Deal management module -- models, schemas, repository and workflow.

Provides SQLAlchemy models (Deal, DealTier, ApprovalRequirement, DealComment,
DealStatusHistory), Pydantic schemas, DealRepository for async CRUD,
DealWorkflow for role-checked status changes, tier financials, and the
DealAssessor capability.
"""
