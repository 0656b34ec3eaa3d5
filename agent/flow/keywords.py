"""
Keyword clusters used to match free-text utterances to transition labels.

A cluster matches when the lowercased utterance contains any of its response
triggers AND the lowercased transition label contains any of its label
triggers. Clusters are plain data: order within a table is match priority.
"""

from dataclasses import dataclass

from agent.flow.models import NodeType


@dataclass(frozen=True)
class KeywordCluster:
    """
    Named pair of trigger sets.

    Attributes:
        name: Cluster identifier (e.g., "reschedule")
        response_triggers: Substrings looked for in the user utterance
        label_triggers: Substrings looked for in the transition label
    """

    name: str
    response_triggers: tuple[str, ...]
    label_triggers: tuple[str, ...]

    def matches(self, response: str, label: str) -> bool:
        response = response.lower()
        label = label.lower()
        return (
            any(trigger in response for trigger in self.response_triggers)
            and any(trigger in label for trigger in self.label_triggers)
        )


GENERAL_CLUSTERS: tuple[KeywordCluster, ...] = (
    KeywordCluster(
        name="affirmative",
        response_triggers=("yes", "want", "interested", "learn"),
        label_triggers=("yes", "want", "learn"),
    ),
    KeywordCluster(
        name="negative",
        response_triggers=("no", "not", "busy"),
        label_triggers=("no", "busy", "not"),
    ),
    KeywordCluster(
        name="medical",
        response_triggers=("surgery", "operation", "medical"),
        label_triggers=("surgery", "medical"),
    ),
    KeywordCluster(
        name="human_transfer",
        response_triggers=("agent", "human", "transfer"),
        label_triggers=("agent", "transfer"),
    ),
    KeywordCluster(
        name="reschedule",
        response_triggers=("reschedule", "change", "appointment"),
        label_triggers=("reschedule", "appointment"),
    ),
)

# Tried before GENERAL_CLUSTERS for the given node type
NODE_TYPE_CLUSTERS: dict[NodeType, tuple[KeywordCluster, ...]] = {
    NodeType.CAL_CHECK_AVAILABILITY: (
        KeywordCluster(
            name="book_now",
            response_triggers=("book", "schedule", "yes", "confirm", "perfect"),
            label_triggers=("book", "schedule", "appointment"),
        ),
        KeywordCluster(
            name="defer",
            response_triggers=("later", "no", "not now", "different time"),
            label_triggers=("later", "no", "different"),
        ),
    ),
    NodeType.CAL_BOOK_APPOINTMENT: (
        KeywordCluster(
            name="confirm_booking",
            response_triggers=("confirm", "yes", "book", "proceed"),
            label_triggers=("confirm", "book", "proceed"),
        ),
        KeywordCluster(
            name="cancel_booking",
            response_triggers=("cancel", "no", "not", "different"),
            label_triggers=("cancel", "no", "different"),
        ),
    ),
}


def clusters_for(node_type: NodeType | None) -> tuple[KeywordCluster, ...]:
    """Clusters in match order for a node type."""
    return NODE_TYPE_CLUSTERS.get(node_type, ()) + GENERAL_CLUSTERS


def match_cluster(
    response: str,
    label: str,
    node_type: NodeType | None = None,
) -> KeywordCluster | None:
    """
    Find the first cluster matching both utterance and label.

    Args:
        response: User utterance
        label: Transition label
        node_type: Type of the node being left (selects extra clusters)

    Returns:
        Matching cluster or None
    """
    for cluster in clusters_for(node_type):
        if cluster.matches(response, label):
            return cluster
    return None
