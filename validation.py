"""
Checkout step validators. Total functions: they report problems in a
ValidationResult and never raise.
"""

import re

from models import CheckoutStep, PaymentPlan, ValidationResult

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_step(state, step) -> ValidationResult:
    errors = {}
    try:
        step = CheckoutStep(step)
    except ValueError:
        return ValidationResult(is_valid=False, errors={'step': f"Unknown checkout step: {step}"})

    if step == CheckoutStep.SELECTIONS:
        # vehicles, rooms and add-ons are all optional
        pass

    elif step == CheckoutStep.TRAVELERS:
        for index, traveler in enumerate(state.travelers):
            if not traveler.first_name.strip():
                errors[f'traveler_{index}_firstName'] = "First name is required"
            if not traveler.last_name.strip():
                errors[f'traveler_{index}_lastName'] = "Last name is required"

    elif step == CheckoutStep.CONTACT:
        contact = state.contact
        if not contact.name.strip():
            errors['contact_name'] = "Full name is required"
        if not contact.email.strip():
            errors['contact_email'] = "Email is required"
        elif not EMAIL_PATTERN.match(contact.email.strip()):
            errors['contact_email'] = "Please enter a valid email"
        if not contact.phone.strip():
            errors['contact_phone'] = "Phone number is required"

    elif step == CheckoutStep.PAYMENT:
        if state.payment_plan != PaymentPlan.PAY_LATER and state.payment_method is None:
            errors['payment_method'] = "Please select a payment method"
        if not state.accepted_terms:
            errors['terms'] = "You must accept the terms and conditions"

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_checkout(state) -> ValidationResult:
    """Every step at once, as done before a booking is submitted."""
    errors = {}
    for step in CheckoutStep:
        errors.update(validate_step(state, step).errors)
    return ValidationResult(is_valid=not errors, errors=errors)
