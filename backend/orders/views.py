import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsFarmer
from services.dispatch import DispatchError, OrderNotFoundError, get_dispatch_scheduler
from transport.serializers import FarmerTransportOfferSerializer, build_activation_map
from transport.views import dispatch_error_response, validation_error_response
from .models import Order
from .serializers import AssignTransportersSerializer, OrderSummarySerializer

logger = logging.getLogger(__name__)


def _get_farmer_order(request, order_id):
    try:
        return Order.objects.get(id=order_id, farmer=request.user)
    except Order.DoesNotExist:
        raise OrderNotFoundError()


def _dispatch_payload(request, order, offers):
    return {
        'order': OrderSummarySerializer(order).data,
        'offers': FarmerTransportOfferSerializer(
            offers,
            many=True,
            context={'request': request, 'activations': build_activation_map(offers)},
        ).data,
    }


# ==================== Farmer Dispatch APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFarmer])
def assign_transporter(request, order_id):
    """
    Send the order's transport job to the farmer's ranked transporters.

    The primary transporter is notified right away; the others only hear
    about it if every higher tier declines or times out.
    """
    serializer = AssignTransportersSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        order = _get_farmer_order(request, order_id)
        offers = get_dispatch_scheduler().create_dispatch(
            order.id,
            serializer.validated_data['transporter_ids'],
            cost=serializer.validated_data['transportCost'],
        )
    except DispatchError as exc:
        logger.info("Transport assignment for order %s refused: %s", order_id, exc.error_code)
        return dispatch_error_response(exc)

    order.refresh_from_db()
    return Response({
        'success': True,
        'data': _dispatch_payload(request, order, offers),
        'message': 'Transport request sent to your primary transporter.',
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsFarmer])
def order_dispatch(request, order_id):
    """
    GET: current dispatch state of the order (idle, dispatching, assigned, exhausted)
    POST: rank available transporters automatically and start a dispatch
    """
    scheduler = get_dispatch_scheduler()
    try:
        order = _get_farmer_order(request, order_id)
        if request.method == 'POST':
            scheduler.dispatch_order(order.id)
        dispatch = scheduler.dispatch_status(order.id)
    except DispatchError as exc:
        return dispatch_error_response(exc)

    order.refresh_from_db()
    data = _dispatch_payload(request, order, dispatch.offers)
    data.update({
        'state': dispatch.state,
        'activeTier': dispatch.active_tier,
        'cycle': dispatch.cycle,
    })
    return Response(
        {'success': True, 'data': data},
        status=status.HTTP_201_CREATED if request.method == 'POST' else status.HTTP_200_OK
    )
