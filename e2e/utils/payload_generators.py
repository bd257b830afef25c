"""
Payload generation for the validation harness.

Every generated email carries a random suffix so scenarios can run repeatedly
against the same database without colliding with earlier runs.
"""

import uuid
from typing import Any, Dict, List, Optional


def unique_suffix() -> str:
    return uuid.uuid4().hex[:8]


class UserPayloadGenerator:
    """
    Builds camelCase payloads as the admin console sends them.
    """

    @staticmethod
    def email(local_part: str, domain: str = "school42.edu") -> str:
        return f"{local_part}.{unique_suffix()}@{domain}"

    @staticmethod
    def teacher(email: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
        payload = {
            "email": email or UserPayloadGenerator.email("jane.doe"),
            "firstName": "Jane",
            "lastName": "Doe",
            "phone": "+2348000000000",
            "employeeId": f"T-{unique_suffix()}",
            "qualification": "MSc Mathematics",
            "designation": "Senior Teacher",
            "experienceYears": 7,
            "skills": ["algebra", "statistics"],
            "metadata": {"source": "validation_harness"},
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def student(email: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
        payload = {
            "email": email or UserPayloadGenerator.email("sam.student"),
            "firstName": "Sam",
            "lastName": "Student",
            "admissionNumber": f"A-{unique_suffix()}",
            "gender": "female",
            "classId": str(uuid.uuid4()),
            "dateOfBirth": "2012-04-01",
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def staff(email: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
        payload = {
            "email": email or UserPayloadGenerator.email("olu.staff"),
            "firstName": "Olu",
            "lastName": "Staff",
            "employeeId": f"S-{unique_suffix()}",
            "department": "Finance",
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def parent(email: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
        payload = {
            "email": email or UserPayloadGenerator.email("ada.parent", domain="example.com"),
            "firstName": "Ada",
            "lastName": "Parent",
            "relationship": "mother",
            "occupation": "Engineer",
            "studentIds": [str(uuid.uuid4())],
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def bulk(user_type: str, users: List[Dict[str, Any]], **defaults: Any) -> Dict[str, Any]:
        request: Dict[str, Any] = {"userType": user_type, "users": users}
        if defaults:
            request["defaultMetadata"] = defaults
        return request
