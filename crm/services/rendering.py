"""Minimal per-recipient templating: literal {{key}} replacement, nothing else."""

from typing import Mapping

from crm.models.contact import Contact


def substitute(template: str, variables: Mapping[str, str]) -> str:
    result = template or ""
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value or "")
    return result


def contact_variables(contact: Contact) -> dict[str, str]:
    return {
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
    }
