from flask import Blueprint, jsonify, g

from ...security import login_required
from .engine import get_user_matches

bp = Blueprint("matches", __name__, url_prefix="/matches")


@bp.get("/mine")
@login_required()
def my_matches():
    rows = get_user_matches(g.current_user_id)
    return jsonify({"count": len(rows), "matches": rows})
