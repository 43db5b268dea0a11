"""
Reconciliation Guard

Idempotent batch jobs that repair ledger consistency after destructive
operations elsewhere in the system. Every job is safe to re-run: a second
run over repaired data finds nothing to do.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from . import config
from .commission import compute_totals
from .errors import MissingScope
from .models import COLLABORATOR_PAYOUT, OFFER_BOOKED, Collaborator
from .store import (
    AUTHORIZED_USERS,
    BOOKINGS,
    CLIENTS,
    COLLABORATORS,
    FINANCE_RECORDS,
    OFFERS,
    LedgerStore,
)
from .tenancy import TenantScope

logger = logging.getLogger(__name__)

# Free-text company hints found in legacy directory records
COMPANY_SYNONYMS = {"vip": "company2", "lux": "company1"}

_ADMIN_ROLES = ("admin", "administrator", "owner", "manager", "superadmin")


@dataclass
class ReconciliationReport:
    """Per-record action log plus the summary counters."""

    job: str
    dry_run: bool = False
    actions: list[str] = field(default_factory=list)
    upserts: int = 0
    deletions: int = 0
    unresolved: int = 0

    def log(self, message: str) -> None:
        self.actions.append(message)
        logger.debug(f"[{self.job}] {message}")

    def summary(self) -> dict:
        return {
            "job": self.job,
            "dry_run": self.dry_run,
            "upserts": self.upserts,
            "deletions": self.deletions,
            "unresolved": self.unresolved,
        }


def _lower(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def normalize_email(value) -> str | None:
    email = _lower(value)
    return email if "@" in email else None


def default_permissions(role: str | None) -> dict:
    return {
        "clients": True,
        "services": True,
        "reservations": True,
        "finance": _lower(role) in _ADMIN_ROLES,
    }


def score_record(record: dict) -> int:
    """Rank duplicates: a valid company link outweighs everything else."""
    return (
        (100 if record.get("_companyValid") else 0)
        + (10 if isinstance(record.get("permissions"), dict) else 0)
        + (5 if record.get("companyName") else 0)
        + (2 if record.get("role") else 0)
        + (1 if record.get("companyId") else 0)
    )


class ReconciliationGuard:
    """Detects and removes ledger entries that lost their owner."""

    def __init__(self, store: LedgerStore):
        self.store = store

    # -------------------------------------------------------------------------
    # Collaborator payouts
    # -------------------------------------------------------------------------

    def purge_orphaned_payouts(self, scope: TenantScope, dry_run: bool = False) -> ReconciliationReport:
        """
        Delete payout mirrors whose booking is gone or was never linked.

        Each referenced collaborator keeps only payments linked to a live
        booking and has its totals recomputed. Legacy payouts carry no
        booking link, so for them this is a full reset. Collaborators are
        repaired before their mirrors are deleted, and any collaborator still
        holding a payment for a deleted booking is picked up on its own, so a
        run interrupted halfway is finished by the next one.
        """
        scope = self._require(scope)
        report = ReconciliationReport("purge-orphaned-payouts", dry_run)

        live_bookings = {b["id"] for b in self.store.query(BOOKINGS, companyId=scope.company_id)}
        payouts = self.store.query(FINANCE_RECORDS, companyId=scope.company_id, serviceKey=COLLABORATOR_PAYOUT)

        orphans = [p for p in payouts if not (p.get("bookingId") and p["bookingId"] in live_bookings)]
        affected = {p["collaboratorId"]: True for p in orphans if p.get("collaboratorId")}
        for doc in self.store.query(COLLABORATORS, companyId=scope.company_id):
            if any(p.get("bookingId") and p["bookingId"] not in live_bookings for p in doc.get("payments") or []):
                affected[doc["id"]] = True

        for collaborator_id in affected:
            doc = self.store.get(COLLABORATORS, collaborator_id)
            if doc is None:
                report.log(f"collaborator {collaborator_id} not found, nothing to reset")
                report.unresolved += 1
                continue
            if not scope.owns(doc, "collaborator"):
                continue
            collaborator = Collaborator.from_dict(doc)
            kept = [p for p in collaborator.payments if p.booking_id in live_bookings]
            paid_total, scheduled_total = compute_totals(kept)
            report.log(
                f"reset collaborator {collaborator_id}: payments {len(collaborator.payments)} -> {len(kept)}, "
                f"paidTotal {paid_total}, scheduledTotal {scheduled_total}"
            )
            if not dry_run:
                self.store.update(COLLABORATORS, collaborator_id, {
                    "payments": [p.to_dict() for p in kept],
                    "paidTotal": float(paid_total),
                    "scheduledTotal": float(scheduled_total),
                })
            report.upserts += 1

        for payout in orphans:
            booking_id = payout.get("bookingId")
            reason = f"booking {booking_id} deleted" if booking_id else "no booking link"
            report.log(
                f"delete payout {payout['id']} | collaborator {payout.get('collaboratorId')} | "
                f"amount {payout.get('providerCost') or 0} | date {payout.get('date')} | {reason}"
            )
            if not dry_run:
                self.store.delete(FINANCE_RECORDS, payout["id"])
            report.deletions += 1

        return report

    def purge_orphaned_finance(self, scope: TenantScope, dry_run: bool = False) -> ReconciliationReport:
        """Delete service finance records whose booking no longer exists."""
        scope = self._require(scope)
        report = ReconciliationReport("purge-orphaned-finance", dry_run)

        live_bookings = {b["id"] for b in self.store.query(BOOKINGS, companyId=scope.company_id)}
        for record in self.store.query(FINANCE_RECORDS, companyId=scope.company_id):
            booking_id = record.get("bookingId")
            if record.get("serviceKey") == COLLABORATOR_PAYOUT or not booking_id or booking_id in live_bookings:
                continue
            report.log(
                f"delete finance record {record['id']} | booking {booking_id} | "
                f"service {record.get('serviceKey')} | amount {record.get('clientAmount') or 0}"
            )
            if not dry_run:
                self.store.delete(FINANCE_RECORDS, record["id"])
            report.deletions += 1

        return report

    def reset_collaborator_payments(self, scope: TenantScope, dry_run: bool = False) -> ReconciliationReport:
        """Clear every collaborator's payment history in scope, with its finance mirrors."""
        scope = self._require(scope)
        report = ReconciliationReport("reset-collaborator-payments", dry_run)

        for payout in self.store.query(FINANCE_RECORDS, companyId=scope.company_id, serviceKey=COLLABORATOR_PAYOUT):
            report.log(f"delete payout {payout['id']} | collaborator {payout.get('collaboratorId')}")
            if not dry_run:
                self.store.delete(FINANCE_RECORDS, payout["id"])
            report.deletions += 1

        for doc in self.store.query(COLLABORATORS, companyId=scope.company_id):
            has_data = bool(doc.get("payments")) or (doc.get("paidTotal") or 0) > 0 or (doc.get("scheduledTotal") or 0) > 0
            if not has_data:
                continue
            report.log(
                f"reset collaborator {doc['id']} | name {doc.get('name')} | "
                f"paidTotal {doc.get('paidTotal') or 0} | payments {len(doc.get('payments') or [])}"
            )
            if not dry_run:
                self.store.update(COLLABORATORS, doc["id"], {"payments": [], "paidTotal": 0, "scheduledTotal": 0})
            report.upserts += 1

        return report

    # -------------------------------------------------------------------------
    # Offers
    # -------------------------------------------------------------------------

    def repair_partial_conversions(self, scope: TenantScope, dry_run: bool = False) -> ReconciliationReport:
        """Mark offers booked when a booking already references them."""
        scope = self._require(scope)
        report = ReconciliationReport("repair-partial-conversions", dry_run)

        for booking in self.store.query(BOOKINGS, companyId=scope.company_id):
            offer_id = booking.get("offerId")
            if not offer_id:
                continue
            offer = self.store.get(OFFERS, offer_id)
            if offer is None:
                report.log(f"booking {booking['id']} references missing offer {offer_id}")
                report.unresolved += 1
                continue
            if not scope.owns(offer, "offer") or offer.get("status") == OFFER_BOOKED:
                continue
            report.log(f"mark offer {offer_id} booked (booking {booking['id']})")
            if not dry_run:
                self.store.update(OFFERS, offer_id, {
                    "status": OFFER_BOOKED,
                    "updatedAt": datetime.now(timezone.utc).isoformat(),
                })
            report.upserts += 1

        return report

    def purge_orphaned_offers(self, scope: TenantScope, dry_run: bool = False) -> ReconciliationReport:
        """Delete offers whose client no longer exists."""
        scope = self._require(scope)
        report = ReconciliationReport("purge-orphaned-offers", dry_run)

        for offer in self.store.query(OFFERS, companyId=scope.company_id):
            client_id = offer.get("clientId")
            if client_id and self.store.get(CLIENTS, client_id) is not None:
                continue
            report.log(f"delete offer {offer['id']} | client {client_id or 'none'} | status {offer.get('status')}")
            if not dry_run:
                self.store.delete(OFFERS, offer["id"])
            report.deletions += 1

        return report

    # -------------------------------------------------------------------------
    # Directory
    # -------------------------------------------------------------------------

    def normalize_directory_entries(
        self,
        raw_records: list[dict],
        companies: list[dict],
        allowed_company_ids=config.ALLOWED_COMPANY_IDS,
        scope: TenantScope | None = None,
        apply: bool = False,
        synonyms: dict | None = None,
    ) -> ReconciliationReport:
        """
        Merge duplicate directory records (same email, any case) into one
        canonical record stored under the lowercase email.

        Dry-run unless apply=True; applying requires a scope and only
        touches identities that resolve to that company.
        """
        if apply and scope is None:
            raise MissingScope("--company is required to apply directory normalization")
        synonyms = COMPANY_SYNONYMS if synonyms is None else synonyms
        report = ReconciliationReport("normalize-directory", dry_run=not apply)

        companies_by_id = {c["id"]: c for c in companies}
        id_by_name = {_lower(c.get("name")): c["id"] for c in companies if _lower(c.get("name"))}
        id_by_contact = {_lower(c.get("contactEmail")): c["id"] for c in companies if _lower(c.get("contactEmail"))}

        def acceptable(company_id) -> bool:
            return bool(company_id) and company_id in companies_by_id and company_id in allowed_company_ids

        def from_text(text) -> str | None:
            by_name = id_by_name.get(_lower(text))
            if acceptable(by_name):
                return by_name
            return next((cid for hint, cid in synonyms.items() if hint in _lower(text)), None)

        grouped: dict[str, list[dict]] = {}
        for record in raw_records:
            email = normalize_email(record.get("email"))
            if email is None:
                report.log(f"skip {record.get('id')}: no usable email")
                continue
            grouped.setdefault(email, []).append(record)

        for email, records in grouped.items():
            candidates = []
            for record in records:
                company_id = record.get("companyId").strip() if isinstance(record.get("companyId"), str) else ""
                company_name = record.get("companyName").strip() if isinstance(record.get("companyName"), str) else ""

                if company_id and not acceptable(company_id):
                    company_id = from_text(company_id) or company_id
                if not acceptable(company_id) and company_name:
                    company_id = from_text(company_name) or company_id
                if not acceptable(company_id) and acceptable(id_by_contact.get(email)):
                    company_id = id_by_contact[email]

                valid = acceptable(company_id)
                role = record.get("role").strip() if isinstance(record.get("role"), str) else None
                permissions = record.get("permissions")
                if not isinstance(permissions, dict):
                    permissions = default_permissions(role) if role else None

                candidates.append({
                    **record,
                    "email": email,
                    "companyId": company_id or None,
                    "companyName": (companies_by_id[company_id].get("name") if valid else None) or company_name or None,
                    "role": role,
                    "permissions": permissions,
                    "_companyValid": valid,
                })

            # sorted() is stable: ties keep input order
            candidates.sort(key=score_record, reverse=True)
            best = candidates[0]

            if not best["_companyValid"] or not best["role"]:
                report.unresolved += 1
                report.log(
                    f"unresolved {email}: companyId={best['companyId']!r} "
                    f"companyName={best['companyName']!r} role={best['role']!r}"
                )
                continue

            if scope is not None and best["companyId"] != scope.company_id:
                logger.warning(f"Skipping directory entry {email}: resolves to {best['companyId']}, scope is {scope.company_id}")
                continue

            payload = {
                "email": email,
                "companyId": best["companyId"],
                "companyName": best["companyName"],
                "role": best["role"],
                "permissions": best["permissions"] or default_permissions(best["role"]),
                "active": True,
            }
            if best.get("createdAt"):
                payload["createdAt"] = best["createdAt"]

            canonical = next((r for r in records if r.get("id") == email), None)
            unchanged = canonical is not None and all(canonical.get(k) == v for k, v in payload.items())
            if unchanged:
                report.log(f"canonical {email} already up to date")
            else:
                report.log(f"{'upsert' if apply else 'would upsert'} canonical {email}: company {best['companyId']}, role {best['role']}")
                if apply:
                    self.store.set(
                        AUTHORIZED_USERS,
                        email,
                        {**payload, "updatedAt": datetime.now(timezone.utc).isoformat()},
                        merge=True,
                    )
                report.upserts += 1

            duplicates = [r for r in records if r.get("id") != email]
            if duplicates:
                report.log(f"  {'delete' if apply else 'would delete'} duplicates: {', '.join(str(r.get('id')) for r in duplicates)}")
                for duplicate in duplicates:
                    if apply:
                        self.store.delete(AUTHORIZED_USERS, duplicate["id"])
                    report.deletions += 1

        return report

    # -------------------------------------------------------------------------
    # Read-only
    # -------------------------------------------------------------------------

    def list_finance_data(self) -> ReconciliationReport:
        """Per-company record counts across every company; never writes."""
        report = ReconciliationReport("list", dry_run=True)
        counts: dict[str, dict[str, int]] = {}
        for collection in (FINANCE_RECORDS, OFFERS, BOOKINGS, COLLABORATORS):
            for doc in self.store.all(collection):
                company = doc.get("companyId") or "unknown"
                per_company = counts.setdefault(company, {FINANCE_RECORDS: 0, OFFERS: 0, BOOKINGS: 0, COLLABORATORS: 0})
                per_company[collection] += 1

        if not counts:
            report.log("(empty)")
        for company, per_company in sorted(counts.items()):
            report.log(
                f"{company}: {per_company[FINANCE_RECORDS]} finance, {per_company[OFFERS]} offers, "
                f"{per_company[BOOKINGS]} bookings, {per_company[COLLABORATORS]} collaborators"
            )
        return report

    @staticmethod
    def _require(scope) -> TenantScope:
        if isinstance(scope, TenantScope):
            return scope
        return TenantScope.require(scope)
