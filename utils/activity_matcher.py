"""
utils/activity_matcher.py — Match logged labor activities to SOP task names.

SOP tasks are high-level ("Weeding", "Spraying/Drenching") while the labor
log records what the crew actually wrote ("Weeding and top dressing",
"Harvesting fine beans"). A log counts as completing a task when:
1. the normalized names are equal
2. the task has an explicit synonym that the activity equals or starts with
3. the activity starts with the task name followed by " " or "/"
4. the task starts with the activity name followed by " " or "/"
"""

import re

_WS_RE = re.compile(r'\s+')

# Normalized SOP task -> normalized activity spellings seen in the logs.
EXPLICIT_TASK_MAPPINGS = {
    'carrying compost': ['carring compost', 'tranporting compost', 'manure transportation'],
    'fertiliza application': ['fertilizer application', 'top dressing'],
    'furrow tracing': ['tracing furrows', 'furrows making'],
    'holes digging': ['digging holes', 'holingout'],
    'holes digging for stakes': ['digging holes', 'holingout'],
    'manure incoporation': ['manure incorporation', 'compost incorporation', 'manure application'],
    'trelissing': ['trellising', 'threllising'],
    'pitmos spreading and sowing': ['sowing', 'sowing media preparation'],
    'spraying/drenching': ['spraying', 'drenching'],
    'hand weeding and top dressing': ['hand weeding', 'weeding and top dressing', 'weeding & top dressing'],
    'weeding and top dressing': ['weeding and top dressing', 'weeding & top dressing', 'hand weeding'],
    'pinching of the broccoli head': ['defloration', 'pruning', 'prunning'],
}


def normalize(text):
    """Lowercase, trim and collapse internal whitespace."""
    return _WS_RE.sub(' ', str(text or '').lower().strip())


def match_activity_to_task(activity, sop_task):
    """Return True if a logged activity should count as completing `sop_task`."""
    norm_activity = normalize(activity)
    norm_task = normalize(sop_task)
    if not norm_activity or not norm_task:
        return False

    if norm_activity == norm_task:
        return True

    mapped = EXPLICIT_TASK_MAPPINGS.get(norm_task)
    if mapped and any(norm_activity == m or norm_activity.startswith(m) for m in mapped):
        return True

    if norm_activity.startswith(norm_task + ' ') or norm_activity.startswith(norm_task + '/'):
        return True

    if norm_task.startswith(norm_activity + ' ') or norm_task.startswith(norm_activity + '/'):
        return True

    return False


def match_product(recorded, sop_product):
    """Feeding records name the product exactly as the SOP does, modulo case/spacing."""
    norm_recorded = normalize(recorded)
    return bool(norm_recorded) and norm_recorded == normalize(sop_product)
