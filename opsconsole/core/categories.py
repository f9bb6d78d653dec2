from typing import Dict, List, Optional

from opsconsole.schemas.bank import CategoryGroup

# Main categories with their sub-categories, grouped by the transaction type they apply to.
EXPENSE_CATEGORIES: List[CategoryGroup] = [
    CategoryGroup(value="operations_day_to_day", label="Operations & Day-to-Day Running", subcategories=[
        {"value": "office_rent", "label": "Office rent"},
        {"value": "warehouse_rent", "label": "Warehouse rent"},
        {"value": "cam_maintenance", "label": "CAM / maintenance charges"},
        {"value": "property_tax", "label": "Property tax"},
        {"value": "utilities", "label": "Utilities (electricity, water, gas)"},
        {"value": "internet_telecom", "label": "Internet & telecom"},
        {"value": "office_supplies", "label": "Office supplies & stationery"},
        {"value": "cleaning_housekeeping", "label": "Cleaning & housekeeping"},
        {"value": "security_services", "label": "Security services"},
    ]),
    CategoryGroup(value="employee_people_costs", label="Employee & People Costs", subcategories=[
        {"value": "salaries_wages", "label": "Salaries & Wages"},
        {"value": "reimbursement", "label": "Reimbursement"},
        {"value": "reimbursement_lien", "label": "Reimbursement Lien"},
    ]),
    CategoryGroup(value="hr_people_development", label="HR & People Development", subcategories=[
        {"value": "employee_engagement", "label": "Employee engagement activities"},
        {"value": "cafeteria_expenses", "label": "Cafeteria expenses"},
    ]),
    CategoryGroup(value="finance_banking_compliance", label="Finance, Banking & Compliance", subcategories=[
        {"value": "bank_charges", "label": "Bank charges"},
        {"value": "gst", "label": "GST"},
        {"value": "penalties_fines", "label": "Penalties & fines"},
        {"value": "loan_interest", "label": "Loan interest"},
        {"value": "emi_payments", "label": "EMI payments"},
        {"value": "processing_fees", "label": "Processing fees"},
        {"value": "overdraft_interest", "label": "Overdraft interest"},
    ]),
    CategoryGroup(value="technology_software", label="Technology & Software", subcategories=[
        {"value": "saas_subscriptions", "label": "SaaS subscriptions"},
        {"value": "accounting_software", "label": "Accounting software"},
        {"value": "cloud_hosting", "label": "Cloud hosting"},
        {"value": "domain_hosting", "label": "Domain & hosting"},
        {"value": "it_support_maintenance", "label": "IT support & maintenance"},
    ]),
    CategoryGroup(value="legal_audit_professional", label="Legal, Audit & Professional Fees", subcategories=[
        {"value": "ca_auditor_fees", "label": "CA / auditor fees"},
        {"value": "licensing_permits", "label": "Licensing & permits"},
        {"value": "trademark_patent_fees", "label": "Trademark / patent fees"},
    ]),
    CategoryGroup(value="admin_miscellaneous", label="Admin & Miscellaneous", subcategories=[
        {"value": "travel_expenses", "label": "Travel expenses"},
        {"value": "lodging_meals", "label": "Lodging & meals"},
        {"value": "local_conveyance", "label": "Local conveyance"},
        {"value": "entertainment", "label": "Entertainment"},
        {"value": "gifts_hospitality", "label": "Gifts & hospitality"},
        {"value": "memberships_subscriptions", "label": "Memberships & subscriptions"},
        {"value": "printing_documentation", "label": "Printing & documentation"},
        {"value": "courier_non_sales", "label": "Courier (non-sales)"},
        {"value": "miscellaneous_expenses", "label": "Miscellaneous expenses"},
    ]),
    CategoryGroup(value="losses_adjustments", label="Losses, Adjustments & Exceptions", subcategories=[
        {"value": "bad_debts", "label": "Bad debts"},
        {"value": "write_offs", "label": "Write-offs"},
        {"value": "inventory_loss", "label": "Inventory loss"},
        {"value": "damage_claims", "label": "Damage claims"},
        {"value": "fraud_losses", "label": "Fraud losses"},
        {"value": "exchange_rate_loss", "label": "Exchange rate loss"},
        {"value": "refund_adjustments", "label": "Refund adjustments"},
    ]),
    CategoryGroup(value="capital_expenditure", label="Capital Expenditure (CapEx)", subcategories=[
        {"value": "land_building", "label": "Land & building"},
        {"value": "vehicles", "label": "Vehicles"},
        {"value": "it_hardware", "label": "IT hardware"},
        {"value": "furniture_fixtures", "label": "Furniture & fixtures"},
        {"value": "long_term_installations", "label": "Long-term installations"},
    ]),
]

INCOME_CATEGORIES: List[CategoryGroup] = [
    CategoryGroup(value="other_income", label="Other Income", subcategories=[
        {"value": "interest_income", "label": "Interest income"},
        {"value": "rental_income", "label": "Rental income"},
        {"value": "commission_received", "label": "Commission received"},
        {"value": "refunds_received", "label": "Refunds received"},
        {"value": "insurance_claims", "label": "Insurance claims"},
        {"value": "fx_gain", "label": "FX gain"},
        {"value": "other_income_misc", "label": "Other income"},
    ]),
]

CATEGORIES_BY_TYPE: Dict[str, List[CategoryGroup]] = {
    "INCOME": INCOME_CATEGORIES,
    "EXPENSE": EXPENSE_CATEGORIES,
}


def categories() -> Dict[str, List[CategoryGroup]]:
    return CATEGORIES_BY_TYPE


def category_label(transaction_type: str, value: str) -> Optional[str]:
    """Label stored on the ledger row, or None when `value` is not a category of that type."""
    for group in CATEGORIES_BY_TYPE.get(transaction_type, []):
        if group.value == value:
            return group.label
        for sub in group.subcategories:
            if sub["value"] == value:
                return f"{group.label} > {sub['label']}"
    return None
