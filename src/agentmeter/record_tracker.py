class RecordTracker:
    """
    RecordTracker hands out ordinal positions for aggregate entries
    within their (provider, date, model) group.

    Aggregate-entry providers have no per-record identifier of their
    own, so a record's identifier is built from its group key plus
    the ordinal. Feeding the same source data through a fresh tracker
    in the same order always yields the same identifiers, which makes
    re-ingestion an upsert instead of a duplicate.
    """

    def __init__(self) -> "None":
        self._counts: "dict[str, int]" = {}

    @staticmethod
    def _make_key(provider: "str", date: "str", model: "str") -> "str":
        """
        constructs the group key of an aggregate entry.
        """
        return f"{provider}|{date}|{model}"

    @staticmethod
    def make_record_id(provider: "str", date: "str", model: "str", ordinal: "int") -> "str":
        return f"{provider}-{date}-{model}-{ordinal}"

    def next_ordinal(self, provider: "str", date: "str", model: "str") -> "int":
        """
        returns the next free ordinal of the group and marks it as
        taken.
        """
        key = self._make_key(provider, date, model)
        ordinal = self._counts.get(key, 0)
        self._counts[key] = ordinal + 1
        return ordinal
