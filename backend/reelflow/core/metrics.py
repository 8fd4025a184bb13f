"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY

# Generation metrics
try:
    generation_jobs_counter = Counter(
        'reelflow_generation_jobs_total',
        'Generation jobs by provider and outcome',
        ['provider', 'outcome']
    )
except ValueError:
    generation_jobs_counter = REGISTRY._names_to_collectors.get('reelflow_generation_jobs_total')

# Publish metrics
try:
    publish_jobs_counter = Counter(
        'reelflow_publish_jobs_total',
        'TikTok publish jobs by outcome',
        ['outcome']
    )
except ValueError:
    publish_jobs_counter = REGISTRY._names_to_collectors.get('reelflow_publish_jobs_total')

# State machine metrics
try:
    rejected_transitions_counter = Counter(
        'reelflow_rejected_transitions_total',
        'Transition attempts rejected because the current status did not match',
        ['entity']
    )
except ValueError:
    rejected_transitions_counter = REGISTRY._names_to_collectors.get('reelflow_rejected_transitions_total')

# Status checker metrics
try:
    status_checker_runs_counter = Counter(
        'reelflow_status_checker_runs_total',
        'Total number of status checker passes',
        ['status']
    )
except ValueError:
    status_checker_runs_counter = REGISTRY._names_to_collectors.get('reelflow_status_checker_runs_total')
