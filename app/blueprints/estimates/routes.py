from app.blueprints import documents as views
from app.services.lifecycle import DocumentKind
from app.services.policy import role_required

from . import bp

KIND = DocumentKind.ESTIMATE


@bp.get("/", strict_slashes=False)
def index():
    return views.list_response(KIND)


@bp.post("/", strict_slashes=False)
def create():
    return views.create_response(KIND)


@bp.get("/<int:estimate_id>")
def get_estimate(estimate_id: int):
    return views.get_response(KIND, estimate_id)


@bp.put("/<int:estimate_id>")
def update(estimate_id: int):
    return views.update_response(KIND, estimate_id)


@bp.delete("/<int:estimate_id>")
@role_required("admin")
def delete_estimate(estimate_id: int):
    return views.delete_response(KIND, estimate_id)


@bp.get("/<int:estimate_id>/pdf")
def export_pdf(estimate_id: int):
    return views.pdf_response(KIND, estimate_id)


@bp.post("/<int:estimate_id>/send-email")
def send_email(estimate_id: int):
    return views.send_email_response(KIND, estimate_id)
