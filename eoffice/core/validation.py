"""
Request validation utilities for E-Office letters.
Run at the HTTP boundary; they raise 400s with clear messages before any
workflow call.
"""
from typing import List
from fastapi import HTTPException


def ensure_unique_reviewers(reviewer_ids: List[str], approver_id: str) -> None:
    """
    Reviewer chain must not repeat a person, and the final approver cannot
    also sit in the paraf chain.

    Raises:
        HTTPException: 400 if the chain is invalid
    """
    seen = set()
    duplicates = []

    for uid in reviewer_ids:
        if uid in seen:
            duplicates.append(uid)
        seen.add(uid)

    if duplicates:
        raise HTTPException(
            status_code=400,
            detail=f"Duplicate reviewers in chain: {sorted(set(duplicates))}"
        )

    if approver_id and approver_id in seen:
        raise HTTPException(
            status_code=400,
            detail=f"Approver {approver_id} cannot also be a reviewer"
        )
