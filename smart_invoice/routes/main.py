"""Workspace API: health, profile, clients, jobs and stored receipts."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, g, jsonify, make_response, request

from ..extensions import db
from ..models import Client, Job, JobFrequency, JobStatus, ProfileRole, Receipt
from ..utils.auth import bearer_required, role_required

main_bp = Blueprint("main", __name__)


class PayloadError(ValueError):
    """Raised for request bodies that fail validation."""


@main_bp.route("/health")
def health_check():
    return {"status": "ok"}


def _company_id() -> str:
    return g.current_profile.company_id


def _bad_request(message: str, status: int = 400):
    return jsonify({"success": False, "error": message}), status


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise PayloadError("Request body must be a JSON object")
    return data


def _parse_date(raw_value: Any) -> Optional[date]:
    """Parse a YYYY-MM-DD date; ISO timestamps are truncated to their date."""
    if raw_value in (None, ""):
        return None
    try:
        return datetime.strptime(str(raw_value).strip()[:10], "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise PayloadError("scheduled_date must be formatted as YYYY-MM-DD") from None


def _parse_price(raw_value: Any) -> Decimal:
    if raw_value is None or isinstance(raw_value, bool):
        raise PayloadError("price is required")
    try:
        price = Decimal(str(raw_value).strip()).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise PayloadError("price must be a number") from None
    if not price.is_finite() or price <= 0:
        raise PayloadError("price must be greater than 0")
    return price


def _parse_frequency(raw_value: Any) -> Optional[JobFrequency]:
    if raw_value in (None, ""):
        return None
    try:
        return JobFrequency(str(raw_value).strip())
    except ValueError:
        raise PayloadError("frequency must be one of weekly, bi-weekly, monthly") from None


def _parse_status(raw_value: Any) -> JobStatus:
    try:
        return JobStatus(str(raw_value).strip())
    except ValueError:
        raise PayloadError("status must be one of pending, paid, completed, test") from None


def _required_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PayloadError(f"{key} is required")
    return value.strip()


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _client_for_company(client_id: str, company_id: str) -> Client:
    return Client.scoped_to_company(company_id).filter_by(id=client_id).first_or_404()


def _job_for_company(job_id: str, company_id: str) -> Job:
    return Job.scoped_to_company(company_id).filter_by(id=job_id).first_or_404()


def _apply_recurrence(job: Job, data: Dict[str, Any]) -> None:
    if "is_recurring" in data:
        job.is_recurring = bool(data.get("is_recurring"))
    if "frequency" in data:
        job.frequency = _parse_frequency(data.get("frequency"))
    if not job.is_recurring:
        job.frequency = None
    elif job.frequency is None:
        raise PayloadError("frequency is required for recurring jobs")


# Profile


@main_bp.route("/api/profile", methods=["GET"])
@bearer_required
def profile():
    return {"success": True, "profile": g.current_profile.to_dict()}


@main_bp.route("/api/profile/company-id", methods=["POST"])
@role_required(ProfileRole.INVOICE_OWNER)
def regenerate_company_id():
    profile = g.current_profile
    previous = profile.company_id
    company_id = profile.regenerate_company_id()
    db.session.commit()
    current_app.logger.warning("Profile %s moved from company %s to %s", profile.id, previous, company_id)
    return {"success": True, "company_id": company_id}


# Clients


@main_bp.route("/api/clients", methods=["GET"])
@bearer_required
def list_clients():
    clients = Client.scoped_to_company(_company_id()).order_by(Client.name.asc()).all()
    return {"success": True, "clients": [client.to_dict() for client in clients]}


@main_bp.route("/api/clients", methods=["POST"])
@bearer_required
def create_client():
    try:
        data = _payload()
        client = Client(
            company_id=_company_id(),
            name=_required_text(data, "name"),
            email=_required_text(data, "email"),
            phone=_optional_text(data, "phone"),
            address=_optional_text(data, "address"),
        )
    except PayloadError as exc:
        return _bad_request(str(exc))

    db.session.add(client)
    db.session.commit()
    return {"success": True, "client": client.to_dict()}, 201


@main_bp.route("/api/clients/<client_id>", methods=["PATCH"])
@bearer_required
def update_client(client_id: str):
    client = _client_for_company(client_id, _company_id())
    try:
        data = _payload()
        if "name" in data:
            client.name = _required_text(data, "name")
        if "email" in data:
            client.email = _required_text(data, "email")
        if "phone" in data:
            client.phone = _optional_text(data, "phone")
        if "address" in data:
            client.address = _optional_text(data, "address")
    except PayloadError as exc:
        db.session.rollback()
        return _bad_request(str(exc))

    db.session.commit()
    return {"success": True, "client": client.to_dict()}


@main_bp.route("/api/clients/<client_id>", methods=["DELETE"])
@bearer_required
def delete_client(client_id: str):
    client = _client_for_company(client_id, _company_id())
    if Job.query.filter_by(client_id=client.id).first() is not None:
        return _bad_request("Client still has jobs", 409)
    db.session.delete(client)
    db.session.commit()
    return {"success": True}


# Jobs


@main_bp.route("/api/jobs", methods=["GET"])
@bearer_required
def list_jobs():
    query = Job.scoped_to_company(_company_id())
    raw_status = request.args.get("status")
    if raw_status:
        try:
            query = query.filter_by(status=_parse_status(raw_status))
        except PayloadError as exc:
            return _bad_request(str(exc))
    jobs = query.order_by(Job.scheduled_date.desc(), Job.created_at.desc()).all()
    return {"success": True, "jobs": [job.to_dict() for job in jobs]}


@main_bp.route("/api/jobs", methods=["POST"])
@bearer_required
def create_job():
    company_id = _company_id()
    try:
        data = _payload()
        client_id = _required_text(data, "client_id")
        if Client.scoped_to_company(company_id).filter_by(id=client_id).first() is None:
            raise PayloadError("Client not found")
        job = Job(
            company_id=company_id,
            client_id=client_id,
            title=_required_text(data, "title"),
            description=_optional_text(data, "description"),
            price=_parse_price(data.get("price")),
            scheduled_date=_parse_date(data.get("scheduled_date")),
            notification_phone=_optional_text(data, "notification_phone"),
            status=_parse_status(data["status"]) if data.get("status") else JobStatus.PENDING,
            is_recurring=False,
        )
        _apply_recurrence(job, data)
    except PayloadError as exc:
        return _bad_request(str(exc))

    db.session.add(job)
    db.session.commit()
    current_app.logger.info("Job %s created for company %s", job.id, company_id)
    return {"success": True, "job": job.to_dict()}, 201


@main_bp.route("/api/jobs/<job_id>", methods=["PATCH"])
@bearer_required
def update_job(job_id: str):
    company_id = _company_id()
    job = _job_for_company(job_id, company_id)
    try:
        data = _payload()
        if "title" in data:
            job.title = _required_text(data, "title")
        if "description" in data:
            job.description = _optional_text(data, "description")
        if "client_id" in data:
            client = _client_for_company(_required_text(data, "client_id"), company_id)
            job.client_id = client.id
        if "scheduled_date" in data:
            job.scheduled_date = _parse_date(data.get("scheduled_date"))
        if "notification_phone" in data:
            job.notification_phone = _optional_text(data, "notification_phone")
        if "status" in data:
            job.status = _parse_status(data.get("status"))
        if "price" in data:
            price = _parse_price(data.get("price"))
            if price != job.price and not job.is_paid:
                # the stored link was priced at the old amount
                job.reset_payment_state()
            job.price = price
        _apply_recurrence(job, data)
    except PayloadError as exc:
        db.session.rollback()
        return _bad_request(str(exc))

    db.session.commit()
    return {"success": True, "job": job.to_dict()}


@main_bp.route("/api/jobs/<job_id>", methods=["DELETE"])
@bearer_required
def delete_job(job_id: str):
    job = _job_for_company(job_id, _company_id())
    db.session.delete(job)
    db.session.commit()
    current_app.logger.info("Job %s deleted", job_id)
    return {"success": True}


@main_bp.route("/api/jobs/<job_id>/receipt", methods=["GET"])
@bearer_required
def job_receipt(job_id: str):
    job = _job_for_company(job_id, _company_id())
    receipt = (
        Receipt.scoped_to_company(job.company_id)
        .filter_by(job_id=job.id)
        .order_by(Receipt.created_at.desc())
        .first()
    )
    if receipt is None:
        return _bad_request("No receipt found for this job", 404)
    return {"success": True, "receipt": receipt.to_dict()}


# Receipts


@main_bp.route("/receipts/<receipt_id>", methods=["GET"])
@bearer_required
def view_receipt(receipt_id: str):
    receipt = Receipt.scoped_to_company(_company_id()).filter_by(id=receipt_id).first_or_404()
    response = make_response(receipt.receipt_html)
    response.headers["Content-Type"] = "text/html; charset=utf-8"
    if request.args.get("download") in {"1", "true", "yes"}:
        response.headers["Content-Disposition"] = f'attachment; filename="receipt-{receipt.id[:8]}.html"'
    return response
