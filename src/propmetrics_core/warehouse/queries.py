"""GA4 export SQL for each metric dimension (BigQuery standard SQL)."""
from datetime import date
from typing import Callable

from ..dates import Granularity
from ..dimensions import DimensionName
from ..sources.registry import SourceDescriptor


MONTH_PERIOD_EXPR = 'FORMAT_DATE("%Y-%m", PARSE_DATE("%Y%m%d", event_date))'
QUARTER_PERIOD_EXPR = (
    'CONCAT(CAST(EXTRACT(YEAR FROM PARSE_DATE("%Y%m%d", event_date)) AS STRING), "-Q", '
    'CAST(CAST(CEIL(EXTRACT(MONTH FROM PARSE_DATE("%Y%m%d", event_date)) / 3.0) AS INT64) AS STRING))'
)

# Each funnel stage accepts the custom Japanese event name or the GA4 ecommerce one
FUNNEL_STAGES = [
    ("first_visit_users", ("first_visit", "first_open")),
    ("plan_selection_users", ("プラン選択", "view_item")),
    ("booking_input_users", ("予約内容入力", "begin_checkout")),
    ("personal_info_users", ("個人情報入力", "add_payment_info")),
    ("completion_users", ("予約完了", "purchase")),
]

PAID_MEDIUM_PATTERN = "%cpm%"


def period_expr(granularity: Granularity) -> str:
    if granularity is Granularity.QUARTER:
        return QUARTER_PERIOD_EXPR
    return MONTH_PERIOD_EXPR


def table_ref(project_id: str, source: SourceDescriptor) -> str:
    return f"`{project_id}.{source.id}.{source.table_prefix}*`"


def date_condition(start: date, end: date) -> str:
    return (
        f"_TABLE_SUFFIX BETWEEN '{start.strftime('%Y%m%d')}' "
        f"AND '{end.strftime('%Y%m%d')}'"
    )


def _in_list(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def basic_cvr_sql(project_id, source, start, end, granularity) -> str:
    return f"""
        WITH user_stats AS (
          SELECT
            {period_expr(granularity)} AS period,
            COUNT(DISTINCT user_pseudo_id) AS active_users,
            COUNT(DISTINCT CASE WHEN event_name = 'purchase' THEN user_pseudo_id END) AS purchase_users
          FROM {table_ref(project_id, source)}
          WHERE {date_condition(start, end)}
          GROUP BY period
        )
        SELECT
          period,
          active_users,
          purchase_users,
          SAFE_DIVIDE(purchase_users, active_users) AS cvr
        FROM user_stats
        ORDER BY period
    """


def cvr_no_ads_sql(project_id, source, start, end, granularity) -> str:
    table = table_ref(project_id, source)
    condition = date_condition(start, end)
    return f"""
        WITH user_first_medium AS (
          SELECT DISTINCT
            user_pseudo_id,
            FIRST_VALUE(
              (SELECT value.string_value FROM UNNEST(event_params) WHERE key = 'medium')
            ) OVER (
              PARTITION BY user_pseudo_id
              ORDER BY event_timestamp ASC
              ROWS BETWEEN UNBOUNDED PRECEDING AND UNBOUNDED FOLLOWING
            ) AS first_medium
          FROM {table}
          WHERE {condition}
            AND event_name IN ('first_visit', 'first_open')
        ),
        user_stats AS (
          SELECT
            {period_expr(granularity)} AS period,
            COUNT(DISTINCT e.user_pseudo_id) AS active_users_no_ads,
            COUNT(DISTINCT CASE WHEN e.event_name = 'purchase' THEN e.user_pseudo_id END) AS purchase_users_no_ads
          FROM {table} e
          LEFT JOIN user_first_medium ufm ON e.user_pseudo_id = ufm.user_pseudo_id
          WHERE {condition}
            AND (ufm.first_medium IS NULL OR ufm.first_medium NOT LIKE '{PAID_MEDIUM_PATTERN}')
          GROUP BY period
        )
        SELECT
          period,
          active_users_no_ads,
          purchase_users_no_ads,
          SAFE_DIVIDE(purchase_users_no_ads, active_users_no_ads) AS cvr_no_ads
        FROM user_stats
        ORDER BY period
    """


def funnel_sql(project_id, source, start, end, granularity) -> str:
    all_events = tuple(name for _, names in FUNNEL_STAGES for name in names)
    stage_flags = ",\n            ".join(
        f"MAX(CASE WHEN event_name IN ({_in_list(names)}) THEN 1 ELSE 0 END) AS {column}"
        for column, names in FUNNEL_STAGES
    )
    stage_sums = ",\n            ".join(
        f"SUM({column}) AS {column}" for column, _ in FUNNEL_STAGES
    )
    return f"""
        WITH funnel_events AS (
          SELECT
            {period_expr(granularity)} AS period,
            user_pseudo_id,
            event_name
          FROM {table_ref(project_id, source)}
          WHERE {date_condition(start, end)}
            AND event_name IN ({_in_list(all_events)})
        ),
        funnel_stages AS (
          SELECT
            period,
            user_pseudo_id,
            {stage_flags}
          FROM funnel_events
          GROUP BY period, user_pseudo_id
        ),
        funnel_summary AS (
          SELECT
            period,
            {stage_sums}
          FROM funnel_stages
          GROUP BY period
        )
        SELECT
          period,
          first_visit_users,
          plan_selection_users,
          booking_input_users,
          personal_info_users,
          completion_users,
          SAFE_DIVIDE(plan_selection_users, first_visit_users) AS hp_to_plan_rate,
          SAFE_DIVIDE(booking_input_users, plan_selection_users) AS plan_to_booking_rate,
          SAFE_DIVIDE(personal_info_users, booking_input_users) AS booking_to_personal_rate,
          SAFE_DIVIDE(completion_users, personal_info_users) AS personal_to_completion_rate,
          SAFE_DIVIDE(completion_users, first_visit_users) AS overall_conversion_rate
        FROM funnel_summary
        ORDER BY period
    """


def traffic_sources_sql(project_id, source, start, end, granularity) -> str:
    table = table_ref(project_id, source)
    condition = date_condition(start, end)
    return f"""
        WITH user_first_source AS (
          SELECT DISTINCT
            user_pseudo_id,
            FIRST_VALUE(
              COALESCE(
                (SELECT value.string_value FROM UNNEST(event_params) WHERE key = 'source'),
                traffic_source.source
              )
            ) OVER (
              PARTITION BY user_pseudo_id
              ORDER BY event_timestamp ASC
              ROWS BETWEEN UNBOUNDED PRECEDING AND UNBOUNDED FOLLOWING
            ) AS first_source,
            FIRST_VALUE(
              COALESCE(
                (SELECT value.string_value FROM UNNEST(event_params) WHERE key = 'medium'),
                traffic_source.medium
              )
            ) OVER (
              PARTITION BY user_pseudo_id
              ORDER BY event_timestamp ASC
              ROWS BETWEEN UNBOUNDED PRECEDING AND UNBOUNDED FOLLOWING
            ) AS first_medium
          FROM {table}
          WHERE {condition}
        ),
        source_stats AS (
          SELECT
            {period_expr(granularity)} AS period,
            CONCAT(COALESCE(ufs.first_source, '(direct)'), ' / ', COALESCE(ufs.first_medium, '(none)')) AS source_medium,
            COUNT(DISTINCT e.user_pseudo_id) AS total_users,
            COUNT(DISTINCT CASE WHEN e.event_name = 'purchase' THEN e.user_pseudo_id END) AS purchase_users
          FROM {table} e
          LEFT JOIN user_first_source ufs ON e.user_pseudo_id = ufs.user_pseudo_id
          WHERE {condition}
          GROUP BY period, source_medium
        )
        SELECT
          period,
          source_medium,
          total_users,
          purchase_users,
          SAFE_DIVIDE(purchase_users, total_users) AS cvr_by_source,
          SAFE_DIVIDE(total_users, SUM(total_users) OVER (PARTITION BY period)) AS user_percentage
        FROM source_stats
        ORDER BY period DESC, total_users DESC
    """


def _demographic_select(label: str, column: str) -> str:
    return f"""
        SELECT
          period,
          '{label}' AS demographic_type,
          COALESCE({column}, 'unknown') AS demographic_value,
          COUNT(DISTINCT user_pseudo_id) AS total_users,
          SUM(has_purchase) AS purchase_users,
          SAFE_DIVIDE(SUM(has_purchase), COUNT(DISTINCT user_pseudo_id)) AS cvr,
          SAFE_DIVIDE(
            COUNT(DISTINCT user_pseudo_id),
            SUM(COUNT(DISTINCT user_pseudo_id)) OVER (PARTITION BY period)
          ) AS percentage
        FROM user_demographics
        WHERE {column} IS NOT NULL
        GROUP BY period, {column}
    """


def demographics_sql(project_id, source, start, end, granularity) -> str:
    selects = "\n        UNION ALL\n".join(
        _demographic_select(label, column)
        for label, column in (
            ("age", "age_group"),
            ("gender", "gender"),
            ("device", "device_category"),
        )
    )
    return f"""
        WITH user_demographics AS (
          SELECT
            {period_expr(granularity)} AS period,
            user_pseudo_id,
            MAX(CASE WHEN param.key = 'age' THEN param.value.string_value END) AS age_group,
            MAX(CASE WHEN param.key = 'gender' THEN param.value.string_value END) AS gender,
            MAX(device.category) AS device_category,
            MAX(CASE WHEN event_name = 'purchase' THEN 1 ELSE 0 END) AS has_purchase
          FROM {table_ref(project_id, source)},
          UNNEST(event_params) AS param
          WHERE {date_condition(start, end)}
          GROUP BY period, user_pseudo_id
        )
        {selects}
        ORDER BY period DESC, demographic_type, total_users DESC
    """


QueryBuilder = Callable[[str, SourceDescriptor, date, date, Granularity], str]

QUERY_BUILDERS: dict[DimensionName, QueryBuilder] = {
    DimensionName.BASIC_CVR: basic_cvr_sql,
    DimensionName.CVR_NO_ADS: cvr_no_ads_sql,
    DimensionName.FUNNEL: funnel_sql,
    DimensionName.TRAFFIC_SOURCES: traffic_sources_sql,
    DimensionName.DEMOGRAPHICS: demographics_sql,
}


def build_query(
    dimension: DimensionName,
    project_id: str,
    source: SourceDescriptor,
    start: date,
    end: date,
    granularity: Granularity,
) -> str:
    return QUERY_BUILDERS[dimension](project_id, source, start, end, granularity)
