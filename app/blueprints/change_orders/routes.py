from app.blueprints import documents as views
from app.services.lifecycle import DocumentKind
from app.services.policy import role_required

from . import bp

KIND = DocumentKind.CHANGE_ORDER


@bp.get("/", strict_slashes=False)
def index():
    return views.list_response(KIND)


@bp.post("/", strict_slashes=False)
def create():
    return views.create_response(KIND)


@bp.get("/<int:change_order_id>")
def get_change_order(change_order_id: int):
    return views.get_response(KIND, change_order_id)


@bp.put("/<int:change_order_id>")
def update(change_order_id: int):
    return views.update_response(KIND, change_order_id)


@bp.delete("/<int:change_order_id>")
@role_required("admin")
def delete_change_order(change_order_id: int):
    return views.delete_response(KIND, change_order_id)


@bp.get("/<int:change_order_id>/pdf")
def export_pdf(change_order_id: int):
    return views.pdf_response(KIND, change_order_id)


@bp.post("/<int:change_order_id>/send-email")
def send_email(change_order_id: int):
    return views.send_email_response(KIND, change_order_id)
