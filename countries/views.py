import logging
import os

from django.db.models import Max
from django.http import FileResponse
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from . import refresh, utils
from .exceptions import FetchError, PersistError
from .models import Country
from .serializers import CountrySerializer

logger = logging.getLogger(__name__)

SORT_ORDERINGS = {
    "gdp_desc": ("-estimated_gdp", "id"),
    "gdp_asc": ("estimated_gdp", "id"),
}


def _not_found():
    return Response({"error": "Country not found"}, status=status.HTTP_404_NOT_FOUND)


def _name_required():
    return Response(
        {"error": "Validation failed", "details": {"name": "is required"}},
        status=status.HTTP_400_BAD_REQUEST,
    )


@api_view(['POST'])
def refresh_countries(request):
    """
    POST /countries/refresh
    Fetch countries and exchange rates, then update or create cached data.
    """
    try:
        result = refresh.run_refresh()
    except FetchError as exc:
        logger.warning("Refresh aborted, %s unavailable: %s", exc.source, exc.reason)
        return Response(
            {
                "error": "External data source unavailable",
                "details": f"Could not fetch data from {exc.source}: {exc.reason}",
            },
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    except PersistError:
        logger.exception("Refresh failed while storing countries")
        return Response(
            {"error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response(
        {
            "status": "success",
            "refreshed_at": result.refreshed_at.isoformat(),
            "refreshed_countries": result.accepted,
            "skipped": result.skipped,
            "image_generated": result.image_generated,
        },
        status=status.HTTP_200_OK,
    )


@api_view(['GET'])
def list_countries(request):
    """
    GET /countries
    Filters: ?region=, ?currency= (case-insensitive)
    Sorting: ?sort=gdp_desc or ?sort=gdp_asc, anything else keeps id order.
    """
    qs = Country.objects.all()

    region = request.query_params.get("region", "").strip()
    if region:
        qs = qs.filter(region__iexact=region)

    currency = request.query_params.get("currency", "").strip()
    if currency:
        qs = qs.filter(currency_code__iexact=currency)

    ordering = SORT_ORDERINGS.get(request.query_params.get("sort"), ("id",))
    qs = qs.order_by(*ordering)

    return Response(CountrySerializer(qs, many=True).data)


@api_view(['GET', 'DELETE'])
def country_detail(request, name):
    """
    GET /countries/:name  -> return 404 JSON if not found
    DELETE /countries/:name -> delete, return 204 or 404
    """
    if not name.strip():
        return _name_required()

    if request.method == 'GET':
        country = Country.objects.get_by_name(name.strip())
        if country is None:
            return _not_found()
        return Response(CountrySerializer(country).data)

    deleted, _ = Country.objects.filter(name__iexact=name.strip()).delete()
    if not deleted:
        return _not_found()
    logger.info("Deleted country %r", name.strip())
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
def get_status(request):
    """
    GET /status -> { total_countries, last_refreshed_at }
    last_refreshed_at is taken as the max(last_refreshed_at) across records (or null)
    """
    total = Country.objects.count()
    last = Country.objects.aggregate(last=Max("last_refreshed_at"))["last"]
    return Response({
        "total_countries": total,
        "last_refreshed_at": last.isoformat() if last else None,
    })


@api_view(['GET'])
def get_summary_image(request):
    """
    GET /countries/image
    Serve the summary image written by the last successful refresh.
    """
    path = utils.get_summary_image_path()
    if not os.path.exists(path):
        return Response({"error": "Summary image not found"}, status=status.HTTP_404_NOT_FOUND)
    return FileResponse(open(path, 'rb'), content_type='image/png')
