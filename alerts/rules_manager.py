"""Alert rules loading and syncing into the rule store."""
import logging
import yaml
from pathlib import Path
from models.alerts import Alert, ValidationError

logger = logging.getLogger("pulsewatch.alerts.rules")

# Fields a YAML rule may change on an existing stored rule; runtime state stays put.
_DEFINITION_FIELDS = (
    "description", "metric_type", "condition", "severity", "enabled",
    "cooldown_minutes", "notification_channels", "notification_config",
)


class RulesManager:
    def __init__(self, rules_path="config/alerts_rules.yaml"):
        self.rules_path = Path(rules_path)
        self.projects = {}
        self.rules = []
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        self.projects = self._parse_projects(data.get("projects", []))
        self.rules = self._parse_rules(data.get("rules", []))
        logger.info(f"Loaded {len(self.rules)} rules for {len(self.projects)} projects")

    def _parse_projects(self, raw_projects):
        projects = {}
        for p in raw_projects:
            if not isinstance(p, dict) or "id" not in p:
                logger.warning(f"Skipping project without id: {p!r}")
                continue
            projects[str(p["id"])] = p.get("name", str(p["id"]))
        return projects

    def _parse_rules(self, raw_rules):
        rules = []
        for r in raw_rules:
            if not isinstance(r, dict):
                logger.warning(f"Skipping malformed rule entry: {r!r}")
                continue
            try:
                rules.append(Alert.from_dict(r))
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning(f"Invalid rule {r.get('name')!r}: {e}")
        return rules

    def get_enabled_rules(self):
        return [r for r in self.rules if r.enabled]

    def get_rule(self, project_id, name):
        for r in self.rules:
            if r.project_id == str(project_id) and r.name == name:
                return r
        return None

    def get_all_rules(self):
        return self.rules

    def sync(self, store):
        """Upsert loaded projects and rules into ``store``.

        Rules are matched by (project_id, name). Matching rules get their
        definition updated; trigger/ack/resolve state is left untouched.
        Returns (created, updated) counts.
        """
        for project_id, name in self.projects.items():
            store.save_project(project_id, name)

        created = updated = 0
        for rule in self.rules:
            existing = store.find_alert_by_name(rule.project_id, rule.name)
            if existing is None:
                store.create_alert(rule.snapshot())
                created += 1
                continue
            changed = False
            for attr in _DEFINITION_FIELDS:
                if getattr(existing, attr) != getattr(rule, attr):
                    setattr(existing, attr, getattr(rule, attr))
                    changed = True
            if changed:
                existing._touch()
                store.update_alert(existing)
                updated += 1
        logger.info(f"Synced rules: {created} created, {updated} updated")
        return created, updated
