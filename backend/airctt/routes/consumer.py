# Overview: Flask API routes for consumer-facing store discovery.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors
from ..services import geo_service, merchant_service

consumer_bp = Blueprint("consumer", __name__, url_prefix="/api/consumer")


@consumer_bp.get("/stores")
@handle_service_errors("list nearby stores")
def stores_route():
    """
    GET ?lat&lng[&category&limit&radius(m)]

    Without a location every active store is returned with distance null.
    """
    stores = geo_service.nearby_stores(
        request.args.get("lat", type=float),
        request.args.get("lng", type=float),
        category=request.args.get("category") or None,
        limit=request.args.get("limit", type=int),
        radius_meters=request.args.get("radius", type=float),
    )
    return jsonify({"success": True, "data": stores, "count": len(stores)})


@consumer_bp.get("/stores/<int:store_id>/menu")
@handle_service_errors("load menu")
def menu_route(store_id: int):
    store = merchant_service.get_store(store_id)
    return jsonify({
        "store": store.to_dict(),
        "products": merchant_service.list_products(store_id, active_only=True),
    })
