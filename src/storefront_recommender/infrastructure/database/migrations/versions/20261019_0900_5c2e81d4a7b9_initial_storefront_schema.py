"""Initial storefront recommender schema

Revision ID: 5c2e81d4a7b9
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5c2e81d4a7b9'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVENT_KINDS = ('VIEW', 'CART_ADD', 'CART_REMOVE', 'CART_UPDATE', 'ORDER_COMPLETED')
RECOMMENDATION_TYPES = ('SIMILAR_PRODUCTS', 'PERSONALIZED', 'FREQUENTLY_BOUGHT_TOGETHER')


def upgrade() -> None:
    string_array = postgresql.ARRAY(sa.String(length=255))

    # Create product_metadata table
    op.create_table('product_metadata',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('product_id', sa.String(length=255), nullable=False),
    sa.Column('title', sa.String(length=500), nullable=False),
    sa.Column('tags', string_array, nullable=False),
    sa.Column('product_type', sa.String(length=255), nullable=True),
    sa.Column('vendor', sa.String(length=255), nullable=True),
    sa.Column('collections', string_array, nullable=False),
    sa.Column('price', sa.Float(), nullable=True),
    sa.Column('popularity', sa.Float(), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop_id', 'product_id', name='uq_product_metadata_shop_product'),
    schema='recommender'
    )
    op.create_index('ix_product_metadata_shop_popularity', 'product_metadata', ['shop_id', 'popularity'], unique=False, schema='recommender')
    op.create_index('ix_product_metadata_collections', 'product_metadata', ['collections'], unique=False, schema='recommender', postgresql_using='gin')
    op.create_index('ix_product_metadata_tags', 'product_metadata', ['tags'], unique=False, schema='recommender', postgresql_using='gin')

    # Create events table
    op.create_table('events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('kind', sa.Enum(*EVENT_KINDS, name='eventkind', schema='recommender'), nullable=False),
    sa.Column('product_id', sa.String(length=255), nullable=True),
    sa.Column('variant_id', sa.String(length=255), nullable=True),
    sa.Column('quantity', sa.Integer(), nullable=True),
    sa.Column('price', sa.Float(), nullable=True),
    sa.Column('user_id', sa.String(length=255), nullable=True),
    sa.Column('session_id', sa.String(length=255), nullable=True),
    sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='recommender'
    )
    op.create_index('ix_events_shop_kind_occurred', 'events', ['shop_id', 'kind', 'occurred_at'], unique=False, schema='recommender')
    op.create_index('ix_events_shop_product', 'events', ['shop_id', 'product_id'], unique=False, schema='recommender')
    op.create_index('ix_events_shop_user_kind', 'events', ['shop_id', 'user_id', 'kind', 'occurred_at'], unique=False, schema='recommender')
    op.create_index('ix_events_shop_session', 'events', ['shop_id', 'session_id', 'occurred_at'], unique=False, schema='recommender')

    # Create orders table
    op.create_table('orders',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('order_id', sa.String(length=255), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=True),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop_id', 'order_id', name='uq_orders_shop_order'),
    schema='recommender'
    )
    op.create_index('ix_orders_shop_completed', 'orders', ['shop_id', 'completed_at'], unique=False, schema='recommender')
    op.create_index('ix_orders_shop_user', 'orders', ['shop_id', 'user_id'], unique=False, schema='recommender')

    # Create order_line_items table
    op.create_table('order_line_items',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_pk', sa.Integer(), nullable=False),
    sa.Column('product_id', sa.String(length=255), nullable=False),
    sa.Column('variant_id', sa.String(length=255), nullable=True),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('price', sa.Float(), nullable=True),
    sa.ForeignKeyConstraint(['order_pk'], ['recommender.orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    schema='recommender'
    )
    op.create_index(op.f('ix_recommender_order_line_items_order_pk'), 'order_line_items', ['order_pk'], unique=False, schema='recommender')

    # Create product_recommendations table
    op.create_table('product_recommendations',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('source_product_id', sa.String(length=255), nullable=False),
    sa.Column('recommended_product_id', sa.String(length=255), nullable=False),
    sa.Column('recommendation_type', sa.Enum(*RECOMMENDATION_TYPES, name='recommendationtype', schema='recommender'), nullable=False),
    sa.Column('score', sa.Float(), nullable=False),
    sa.Column('last_calculated', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop_id', 'source_product_id', 'recommended_product_id', 'recommendation_type', name='uq_product_recommendations_key'),
    schema='recommender'
    )
    op.create_index('ix_product_recommendations_lookup', 'product_recommendations', ['shop_id', 'source_product_id', 'recommendation_type', 'score'], unique=False, schema='recommender')

    # Create user_profiles table
    op.create_table('user_profiles',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('preferred_categories', string_array, nullable=False),
    sa.Column('preferred_brands', string_array, nullable=False),
    sa.Column('price_min', sa.Float(), nullable=True),
    sa.Column('price_max', sa.Float(), nullable=True),
    sa.Column('viewed_products', string_array, nullable=False),
    sa.Column('purchased_products', string_array, nullable=False),
    sa.Column('last_active', sa.DateTime(timezone=True), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop_id', 'user_id', name='uq_user_profiles_shop_user'),
    schema='recommender'
    )


def downgrade() -> None:
    # Drop all recommender schema tables
    op.drop_table('user_profiles', schema='recommender')

    op.drop_index('ix_product_recommendations_lookup', table_name='product_recommendations', schema='recommender')
    op.drop_table('product_recommendations', schema='recommender')

    op.drop_index(op.f('ix_recommender_order_line_items_order_pk'), table_name='order_line_items', schema='recommender')
    op.drop_table('order_line_items', schema='recommender')

    op.drop_index('ix_orders_shop_user', table_name='orders', schema='recommender')
    op.drop_index('ix_orders_shop_completed', table_name='orders', schema='recommender')
    op.drop_table('orders', schema='recommender')

    op.drop_index('ix_events_shop_session', table_name='events', schema='recommender')
    op.drop_index('ix_events_shop_user_kind', table_name='events', schema='recommender')
    op.drop_index('ix_events_shop_product', table_name='events', schema='recommender')
    op.drop_index('ix_events_shop_kind_occurred', table_name='events', schema='recommender')
    op.drop_table('events', schema='recommender')

    op.drop_index('ix_product_metadata_tags', table_name='product_metadata', schema='recommender')
    op.drop_index('ix_product_metadata_collections', table_name='product_metadata', schema='recommender')
    op.drop_index('ix_product_metadata_shop_popularity', table_name='product_metadata', schema='recommender')
    op.drop_table('product_metadata', schema='recommender')

    # Drop enum types
    sa.Enum(name='recommendationtype', schema='recommender').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='eventkind', schema='recommender').drop(op.get_bind(), checkfirst=True)
