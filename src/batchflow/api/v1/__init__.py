"""API version 1 routes."""

from fastapi import APIRouter

from batchflow.api.v1 import batches, rules, transactions

router = APIRouter(prefix="/api/v1")

# Include routers
router.include_router(batches.router)
router.include_router(rules.router)
router.include_router(transactions.router)
