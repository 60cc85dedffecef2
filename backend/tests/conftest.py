"""
Shared form and entry fixtures for the entry engine tests.
"""

import uuid

import pytest


@pytest.fixture
def gross_form():
    """Both-type gross form: patient fees (no GST), clinic-paid lab fees (10% exclusive)."""
    return {
        "id": "form-gross",
        "name": "Monthly takings",
        "formType": "both",
        "calculationMethod": "gross",
        "serviceFacilityFeePercent": 40,
        "fields": [
            {
                "id": "fees",
                "name": "Patient fees",
                "type": "currency",
                "section": "income",
                "includeInTotal": True,
                "gstConfig": {"enabled": False},
            },
            {
                "id": "lab",
                "name": "Lab fees",
                "type": "currency",
                "section": "expense",
                "includeInTotal": True,
                "paymentResponsibility": "clinic",
                "gstConfig": {"enabled": True, "rate": 10, "type": "exclusive"},
            },
            {
                "id": "notes",
                "name": "Notes",
                "type": "text",
                "section": "income",
                "includeInTotal": False,
            },
        ],
    }


@pytest.fixture
def gross_values():
    return [
        {"fieldId": "fees", "fieldName": "Patient fees", "value": 290},
        {"fieldId": "lab", "fieldName": "Lab fees", "value": "90"},
        {"fieldId": "notes", "fieldName": "Notes", "value": "locum week"},
    ]


@pytest.fixture
def net_form():
    """Income-only net form with GST-inclusive fees."""
    return {
        "id": "form-net",
        "name": "Associate income",
        "formType": "income",
        "calculationMethod": "net",
        "fields": [
            {
                "id": "fees",
                "name": "Gross fees",
                "type": "currency",
                "section": "income",
                "includeInTotal": True,
                "gstConfig": {"enabled": True, "rate": 10, "type": "inclusive"},
            },
            {
                "id": "paid",
                "name": "Paid in full",
                "type": "checkbox",
                "section": "income",
                "includeInTotal": False,
            },
        ],
    }


@pytest.fixture
def net_values():
    return [
        {"fieldId": "fees", "fieldName": "Gross fees", "value": 1100},
        {"fieldId": "paid", "fieldName": "Paid in full", "value": True},
    ]


@pytest.fixture
def expense_form():
    """Expense-only form with a manual GST line."""
    return {
        "id": "form-expense",
        "name": "Practice costs",
        "formType": "expense",
        "calculationMethod": "net",
        "serviceFacilityFeePercent": 40,
        "fields": [
            {
                "id": "rent",
                "name": "Rent",
                "type": "currency",
                "section": "expense",
                "includeInTotal": True,
                "gstConfig": {"enabled": True, "rate": 10, "type": "exclusive"},
            },
            {
                "id": "consumables",
                "name": "Consumables",
                "type": "number",
                "section": "expense",
                "includeInTotal": True,
                "gstConfig": {"enabled": True, "rate": 10, "type": "manual"},
            },
        ],
    }


@pytest.fixture
def expense_values():
    return [
        {"fieldId": "rent", "fieldName": "Rent", "value": 500},
        {"fieldId": "consumables", "fieldName": "Consumables", "value": 80, "manualGstAmount": 7.5},
    ]


@pytest.fixture
def entry_id():
    return str(uuid.uuid4())
