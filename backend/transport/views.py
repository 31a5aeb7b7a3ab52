import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsTransporter
from services.dispatch import DispatchError, get_dispatch_scheduler
from .serializers import (
    CounterOfferSerializer,
    DeclineOfferSerializer,
    OfferListQuerySerializer,
    TransportOfferSerializer,
    build_activation_map,
)

logger = logging.getLogger(__name__)


def dispatch_error_response(exc: DispatchError) -> Response:
    return Response(
        {
            'success': False,
            'error': exc.error_code,
            'message': exc.message,
        },
        status=exc.status_code
    )


def validation_error_response(errors) -> Response:
    return Response(
        {
            'success': False,
            'error': 'validation_error',
            'errors': errors,
        },
        status=status.HTTP_400_BAD_REQUEST
    )


# ==================== Transporter Offer APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsTransporter])
def list_transport_offers(request):
    """
    List the caller's transport offers, newest first.

    Includes pending records that are still waiting behind a higher
    priority transporter (isActive = false).
    """
    query = OfferListQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return validation_error_response(query.errors)

    offers = list(
        get_dispatch_scheduler().list_offers_for_transporter(
            request.user.id,
            query.validated_data.get('status'),
        )
    )
    serializer = TransportOfferSerializer(
        offers,
        many=True,
        context={'request': request, 'activations': build_activation_map(offers)},
    )
    return Response({
        'success': True,
        'data': {'offers': serializer.data},
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTransporter])
def accept_transport_offer(request, offer_id):
    """Accept the active offer; the order is assigned to the caller."""
    try:
        offer = get_dispatch_scheduler().accept(offer_id, request.user.id)
    except DispatchError as exc:
        logger.info("Accept of offer %s by user %s refused: %s", offer_id, request.user.id, exc.error_code)
        return dispatch_error_response(exc)

    return Response({
        'success': True,
        'data': TransportOfferSerializer(offer, context={'request': request}).data,
        'message': 'Transport request accepted.',
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTransporter])
def decline_transport_offer(request, offer_id):
    """Decline the active offer; the next tier is notified."""
    serializer = DeclineOfferSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        get_dispatch_scheduler().decline(
            offer_id,
            request.user.id,
            reason=serializer.validated_data.get('reason'),
        )
    except DispatchError as exc:
        logger.info("Decline of offer %s by user %s refused: %s", offer_id, request.user.id, exc.error_code)
        return dispatch_error_response(exc)

    return Response({
        'success': True,
        'message': 'Transport request declined.',
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTransporter])
def counter_transport_offer(request, offer_id):
    """Propose a different fee on the active offer."""
    serializer = CounterOfferSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    try:
        offer = get_dispatch_scheduler().counter(
            offer_id,
            request.user.id,
            serializer.validated_data['counterFee'],
        )
    except DispatchError as exc:
        return dispatch_error_response(exc)

    return Response({
        'success': True,
        'data': TransportOfferSerializer(offer, context={'request': request}).data,
        'message': 'Counter offer sent to the farmer.',
    })
