from uuid import UUID

from ninja import ModelSchema

from events.models import Event, PricingCategory


class MinimalEventSchema(ModelSchema):
    id: UUID
    status: Event.EventStatus

    class Meta:
        model = Event
        fields = ["id", "name", "status", "start", "end", "venue", "currency"]


class PricingCategorySchema(ModelSchema):
    class Meta:
        model = PricingCategory
        fields = ["id", "name", "description", "unit_price", "total_units", "available_units"]
