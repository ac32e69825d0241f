from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .models.product import ColumnRole, ProductType, RecordFamily

"""Schema registry: sheet routing, column schemas and storage bindings.

The registry is a plain value handed to the parser, resolver and deployment
engine. `default_registry()` builds the production tables; tests and config
may supply alternate aliases or a completely different registry.

- resolve_product_type(sheet_name): exact, case-sensitive alias lookup
- schema_for(product_type): ordered column roles + validators to apply
- binding_for(product_type): target tables, business-key prefix, column map
"""

__all__ = [
    "ProgressRule",
    "StorageBinding",
    "SheetSchema",
    "ProductSpec",
    "SchemaRegistry",
    "DEFAULT_SCHEMAS",
    "DEFAULT_SHEET_ALIASES",
    "CATEGORY_PRODUCTS",
    "default_registry",
    "allowed_products",
]


@dataclass(frozen=True)
class ProgressRule:
    """Submission status derivation from the recomputed progress.

    pct >= 100 moves the submission to `completed_status`. Content on a
    submission still in `initial_status` moves it to `started_status`.
    """
    completed_status: str = "completed"
    started_status: str = "in_progress"
    initial_status: str = "pending"

    def derive(self, percentage: int, content_count: int, current_status: str | None) -> str | None:
        """Return the new status, or None to leave it unchanged."""
        if percentage >= 100:
            return self.completed_status
        if content_count > 0 and current_status == self.initial_status:
            return self.started_status
        return None


@dataclass(frozen=True)
class StorageBinding:
    """Where and how records of one product type are stored.

    storage_key is the content table. Upserts are keyed by
    (submission_key_column, columns[PRIMARY_DATE]).
    """
    storage_key: str
    business_key_prefix: str
    submission_table: str
    columns: Mapping[ColumnRole, str]
    order_column: str | None = None  # upload_order (max + 1 on insert)
    count_column: str | None = None  # 設定時は進捗 = SUM(count_column)
    distribution_type: str | None = None
    distribution_column: str = "distribution_type"
    fixed_values: Mapping[str, Any] = field(default_factory=dict)
    progress_rule: ProgressRule | None = None
    submission_key_column: str = "submission_id"
    updated_at_column: str | None = "updated_at"

    @property
    def date_column(self) -> str:
        return self.columns[ColumnRole.PRIMARY_DATE]

    def column_values(self, values: Mapping[ColumnRole, Any]) -> dict[str, Any]:
        """Map payload role values to storage columns.

        Roles the binding does not store are dropped. Fixed values and the
        distribution tag override whatever the sheet supplied.
        """
        out = {self.columns[role]: v for role, v in values.items() if role in self.columns}
        if self.distribution_type is not None:
            out[self.distribution_column] = self.distribution_type
        out.update(self.fixed_values)
        return out


@dataclass(frozen=True)
class SheetSchema:
    """Ordered column roles of a sheet and the validators that apply."""
    family: RecordFamily
    columns: tuple[ColumnRole, ...]
    required: tuple[ColumnRole, ...] = ()  # submission number 以外の必須項目
    dates: tuple[ColumnRole, ...] = ()
    count: ColumnRole | None = None
    labels: Mapping[ColumnRole, str] = field(default_factory=dict)

    def label(self, role: ColumnRole) -> str:
        return self.labels.get(role, role.value.replace("_", " "))


@dataclass(frozen=True)
class ProductSpec:
    product_type: ProductType
    display_name: str
    family: RecordFamily
    binding: StorageBinding


_LEAD = (ColumnRole.SUBMISSION_NUMBER, ColumnRole.COMPANY_NAME)

DEFAULT_SCHEMAS: dict[RecordFamily, SheetSchema] = {
    RecordFamily.REVIEW: SheetSchema(
        family=RecordFamily.REVIEW,
        columns=_LEAD + (
            ColumnRole.CONTENT_TEXT,
            ColumnRole.PRIMARY_DATE,
            ColumnRole.SECONDARY_DATE,
            ColumnRole.STATUS,
            ColumnRole.LINK,
            ColumnRole.EXTERNAL_ID,
        ),
        required=(ColumnRole.CONTENT_TEXT,),
        dates=(ColumnRole.PRIMARY_DATE, ColumnRole.SECONDARY_DATE),
        labels={
            ColumnRole.CONTENT_TEXT: "review text",
            ColumnRole.PRIMARY_DATE: "review registered",
            ColumnRole.SECONDARY_DATE: "receipt",
        },
    ),
    RecordFamily.DISTRIBUTION: SheetSchema(
        family=RecordFamily.DISTRIBUTION,
        columns=_LEAD + (
            ColumnRole.TITLE,
            ColumnRole.PRIMARY_DATE,
            ColumnRole.STATUS,
            ColumnRole.LINK,
            ColumnRole.EXTERNAL_ID,
        ),
        required=(ColumnRole.TITLE,),
        dates=(ColumnRole.PRIMARY_DATE,),
        labels={ColumnRole.TITLE: "post title", ColumnRole.PRIMARY_DATE: "published"},
    ),
    RecordFamily.COMMUNITY_POST: SheetSchema(
        family=RecordFamily.COMMUNITY_POST,
        columns=_LEAD + (
            ColumnRole.TITLE,
            ColumnRole.PRIMARY_DATE,
            ColumnRole.STATUS,
            ColumnRole.LINK,
            ColumnRole.EXTERNAL_ID,
            ColumnRole.CHANNEL_NAME,
        ),
        required=(ColumnRole.TITLE,),
        dates=(ColumnRole.PRIMARY_DATE,),
        labels={ColumnRole.TITLE: "post title", ColumnRole.PRIMARY_DATE: "published"},
    ),
    RecordFamily.DAILY_COUNT: SheetSchema(
        family=RecordFamily.DAILY_COUNT,
        columns=_LEAD + (
            ColumnRole.PRIMARY_DATE,
            ColumnRole.COMPLETED_COUNT,
            ColumnRole.NOTES,
        ),
        dates=(ColumnRole.PRIMARY_DATE,),
        count=ColumnRole.COMPLETED_COUNT,
        labels={ColumnRole.PRIMARY_DATE: "record"},
    ),
}

_REVIEW_COLUMNS = {
    ColumnRole.CONTENT_TEXT: "script_text",
    ColumnRole.PRIMARY_DATE: "review_registered_date",
    ColumnRole.SECONDARY_DATE: "receipt_date",
    ColumnRole.LINK: "review_link",
    ColumnRole.EXTERNAL_ID: "review_id",
}

_BLOG_COLUMNS = {
    ColumnRole.TITLE: "blog_title",
    ColumnRole.PRIMARY_DATE: "published_date",
    ColumnRole.STATUS: "status",
    ColumnRole.LINK: "blog_url",
    ColumnRole.EXTERNAL_ID: "blog_id",
}

_CAFE_COLUMNS = {
    ColumnRole.TITLE: "post_title",
    ColumnRole.PRIMARY_DATE: "published_date",
    ColumnRole.STATUS: "status",
    ColumnRole.LINK: "post_url",
    ColumnRole.EXTERNAL_ID: "writer_id",
    ColumnRole.CHANNEL_NAME: "cafe_name",
}


def _blog_binding(distribution_type: str) -> StorageBinding:
    return StorageBinding(
        storage_key="blog_content_items",
        business_key_prefix="BD",
        submission_table="blog_distribution_submissions",
        columns=_BLOG_COLUMNS,
        order_column="upload_order",
        distribution_type=distribution_type,
        progress_rule=ProgressRule(),
    )


def _cafe_binding(distribution_type: str) -> StorageBinding:
    return StorageBinding(
        storage_key="cafe_content_items",
        business_key_prefix="CM",
        submission_table="cafe_marketing_submissions",
        columns=_CAFE_COLUMNS,
        order_column="upload_order",
        distribution_type=distribution_type,
        progress_rule=ProgressRule(),
    )


def _default_products() -> dict[ProductType, ProductSpec]:
    return {
        ProductType.KAKAOMAP: ProductSpec(
            ProductType.KAKAOMAP,
            "K맵 리뷰",
            RecordFamily.REVIEW,
            StorageBinding(
                storage_key="kakaomap_content_items",
                business_key_prefix="KM",
                submission_table="kakaomap_review_submissions",
                columns={**_REVIEW_COLUMNS, ColumnRole.STATUS: "status"},
                order_column="upload_order",
                # レポート経由のレビューは検収済みとして保存
                fixed_values={"status": "approved", "source_type": "data_management"},
                progress_rule=ProgressRule(),
            ),
        ),
        ProductType.RECEIPT: ProductSpec(
            ProductType.RECEIPT,
            "방문자 리뷰",
            RecordFamily.REVIEW,
            StorageBinding(
                storage_key="receipt_content_items",
                business_key_prefix="RR",
                submission_table="receipt_review_submissions",
                columns={**_REVIEW_COLUMNS, ColumnRole.STATUS: "review_status"},
                order_column="upload_order",
                progress_rule=ProgressRule(),
            ),
        ),
        ProductType.BLOG_REVIEWER: ProductSpec(
            ProductType.BLOG_REVIEWER, "리뷰어 배포", RecordFamily.DISTRIBUTION, _blog_binding("reviewer")
        ),
        ProductType.BLOG_VIDEO: ProductSpec(
            ProductType.BLOG_VIDEO, "영상 배포", RecordFamily.DISTRIBUTION, _blog_binding("video")
        ),
        ProductType.BLOG_AUTOMATION: ProductSpec(
            ProductType.BLOG_AUTOMATION, "자동화 배포", RecordFamily.DISTRIBUTION, _blog_binding("automation")
        ),
        ProductType.CAFE: ProductSpec(
            ProductType.CAFE, "카페 침투", RecordFamily.COMMUNITY_POST, _cafe_binding("cafe")
        ),
        ProductType.COMMUNITY: ProductSpec(
            ProductType.COMMUNITY, "커뮤니티 마케팅", RecordFamily.COMMUNITY_POST, _cafe_binding("community")
        ),
        ProductType.PLACE: ProductSpec(
            ProductType.PLACE,
            "플레이스 유입",
            RecordFamily.DAILY_COUNT,
            StorageBinding(
                storage_key="place_daily_records",
                business_key_prefix="PL",
                submission_table="place_submissions",
                columns={
                    ColumnRole.PRIMARY_DATE: "record_date",
                    ColumnRole.COMPLETED_COUNT: "completed_count",
                    ColumnRole.NOTES: "notes",
                },
                count_column="completed_count",
            ),
        ),
    }


DEFAULT_SHEET_ALIASES: dict[str, ProductType] = {
    "K맵리뷰": ProductType.KAKAOMAP,
    "K맵 리뷰": ProductType.KAKAOMAP,
    "카카오맵": ProductType.KAKAOMAP,
    "kakaomap": ProductType.KAKAOMAP,
    "방문자리뷰": ProductType.RECEIPT,
    "방문자 리뷰": ProductType.RECEIPT,
    "영수증리뷰": ProductType.RECEIPT,
    "영수증 리뷰": ProductType.RECEIPT,
    "receipt": ProductType.RECEIPT,
    "리뷰어배포": ProductType.BLOG_REVIEWER,
    "리뷰어 배포": ProductType.BLOG_REVIEWER,
    "blog_reviewer": ProductType.BLOG_REVIEWER,
    "영상배포": ProductType.BLOG_VIDEO,
    "영상 배포": ProductType.BLOG_VIDEO,
    "blog_video": ProductType.BLOG_VIDEO,
    "자동화배포": ProductType.BLOG_AUTOMATION,
    "자동화 배포": ProductType.BLOG_AUTOMATION,
    "blog_automation": ProductType.BLOG_AUTOMATION,
    "카페침투": ProductType.CAFE,
    "카페 침투": ProductType.CAFE,
    "cafe": ProductType.CAFE,
    "커뮤니티마케팅": ProductType.COMMUNITY,
    "커뮤니티 마케팅": ProductType.COMMUNITY,
    "community": ProductType.COMMUNITY,
    "플레이스유입": ProductType.PLACE,
    "플레이스 유입": ProductType.PLACE,
    "place": ProductType.PLACE,
}

CATEGORY_PRODUCTS: dict[str, tuple[ProductType, ...]] = {
    "all": tuple(ProductType),
    "review": (ProductType.KAKAOMAP, ProductType.RECEIPT),
    "blog": (ProductType.BLOG_REVIEWER, ProductType.BLOG_VIDEO, ProductType.BLOG_AUTOMATION),
    "cafe": (ProductType.CAFE, ProductType.COMMUNITY),
    "place": (ProductType.PLACE,),
}


def allowed_products(category: str) -> frozenset[ProductType]:
    """Allowed product set of a batch category."""
    try:
        return frozenset(CATEGORY_PRODUCTS[category])
    except KeyError as e:
        raise ValueError(f"unknown category: {category}") from e


class SchemaRegistry:
    """Sheet-name → product type routing plus per-type schema and binding."""

    def __init__(
        self,
        products: Mapping[ProductType, ProductSpec],
        aliases: Mapping[str, ProductType],
        schemas: Mapping[RecordFamily, SheetSchema] | None = None,
    ) -> None:
        self._products = dict(products)
        self._aliases = dict(aliases)
        self._schemas = dict(schemas if schemas is not None else DEFAULT_SCHEMAS)
        for alias, pt in self._aliases.items():
            if pt not in self._products:
                raise ValueError(f"alias '{alias}' points to unregistered product type {pt.value}")

    def resolve_product_type(self, sheet_name: str) -> ProductType | None:
        return self._aliases.get(sheet_name)

    def spec_for(self, product_type: ProductType) -> ProductSpec:
        return self._products[product_type]

    def schema_for(self, product_type: ProductType) -> SheetSchema:
        return self._schemas[self._products[product_type].family]

    def binding_for(self, product_type: ProductType) -> StorageBinding:
        return self._products[product_type].binding

    def display_name(self, product_type: ProductType) -> str:
        return self._products[product_type].display_name

    def submission_tables(self) -> dict[str, str]:
        """Business-key prefix → submission table, across all products."""
        return {
            spec.binding.business_key_prefix: spec.binding.submission_table
            for spec in self._products.values()
        }

    def with_aliases(self, extra: Mapping[str, ProductType]) -> SchemaRegistry:
        """Return a registry with additional sheet aliases."""
        return SchemaRegistry(self._products, {**self._aliases, **extra}, self._schemas)


def default_registry(extra_aliases: Mapping[str, str] | None = None) -> SchemaRegistry:
    """Build the production registry.

    extra_aliases maps additional sheet names to product type values
    (as written in config/import.yml).
    """
    registry = SchemaRegistry(_default_products(), DEFAULT_SHEET_ALIASES)
    if extra_aliases:
        registry = registry.with_aliases(_coerce_aliases(extra_aliases.items()))
    return registry


def _coerce_aliases(items: Iterable[tuple[str, str]]) -> dict[str, ProductType]:
    out: dict[str, ProductType] = {}
    for alias, value in items:
        try:
            out[alias] = ProductType(value)
        except ValueError as e:
            raise ValueError(f"sheet alias '{alias}': unknown product type '{value}'") from e
    return out
