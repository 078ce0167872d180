"""Report definitions: which Matomo method backs each report feature."""

from dataclasses import dataclass

from matomo_access.fetch import ParamValue
from matomo_access.reports.parsers import ReportShape


DEFAULT_ROW_LIMIT = 10


@dataclass(frozen=True)
class Supplement:
    """A secondary method whose fields are merged into a record report.

    Attributes:
        method: Matomo API method.
        fields: Fields copied from its (unwrapped) record.
    """

    method: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class ReportDefinition:
    """How to fetch and parse one report feature.

    Attributes:
        feature: Feature name, also the cache namespace.
        method: Matomo API method.
        shape: Canonical shape the payload is parsed into.
        default_limit: filter_limit sent when the caller gives none.
        fixed_params: Parameters always sent for this feature.
        scalar_field: Record field for bare numeric payloads.
        supplements: Best-effort secondary fetches merged into records.
    """

    feature: str
    method: str
    shape: ReportShape
    default_limit: int | None = None
    fixed_params: tuple[tuple[str, ParamValue], ...] = ()
    scalar_field: str = "value"
    supplements: tuple[Supplement, ...] = ()


REPORTS: dict[str, ReportDefinition] = {
    definition.feature: definition
    for definition in (
        ReportDefinition(
            feature="keyNumbers",
            method="VisitsSummary.get",
            shape="record",
            scalar_field="nb_visits",
            supplements=(
                Supplement("Actions.get", ("nb_pageviews", "nb_uniq_pageviews")),
            ),
        ),
        ReportDefinition(
            feature="popularUrls",
            method="Actions.getPageUrls",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
            fixed_params=(("flat", 1),),
        ),
        ReportDefinition(
            feature="topReferrers",
            method="Referrers.getReferrerType",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
        ReportDefinition(
            feature="events",
            method="Events.getAction",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
            fixed_params=(("flat", 1),),
        ),
        ReportDefinition(
            feature="entryPages",
            method="Actions.getEntryPageUrls",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
        ReportDefinition(
            feature="campaigns",
            method="Referrers.getCampaigns",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
        ReportDefinition(
            feature="ecommerceOverview",
            method="Goals.get",
            shape="record",
            fixed_params=(("idGoal", "ecommerceOrder"),),
        ),
        ReportDefinition(
            feature="eventCategories",
            method="Events.getCategory",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
        ReportDefinition(
            feature="deviceTypes",
            method="DevicesDetection.getType",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
        ReportDefinition(
            feature="trafficChannels",
            method="Referrers.getReferrerType",
            shape="rows",
            default_limit=DEFAULT_ROW_LIMIT,
        ),
    )
}


def get_report_definition(feature: str) -> ReportDefinition:
    """Look up a report feature.

    Args:
        feature: Feature name.

    Returns:
        The feature's definition.

    Raises:
        KeyError: If the feature is unknown.
    """
    try:
        return REPORTS[feature]
    except KeyError:
        known = ", ".join(sorted(REPORTS))
        raise KeyError(f"Unknown report feature '{feature}'. Known: {known}") from None
