"""Post-AI rule engine: trigger correction, score guards, compliance mapping."""
from advisory_radar.schemas.alerts import AlertType
from advisory_radar.schemas.compliance import Relevance
from advisory_radar.services.compliance.regulation_database import ALL_REFERENCES
from advisory_radar.services.compliance.rule_engine import POLICY_VERSION, ComplianceRuleEngine
from advisory_radar.services.compliance.trigger_keywords import ALLOWED_TRIGGERS_SET


def _references(result):
    c = result.compliance
    return [ref for tag in (c.nis2, c.dora, c.gdpr) if tag for ref in tag.references]


def test_hallucinated_triggers_are_stripped(make_alert):
    alert = make_alert(cvss_score=None)
    result = ComplianceRuleEngine().validate(
        alert, ["active_exploitation", "made_up_trigger", "Art. 99 Fake Regulation"]
    )

    assert "made_up_trigger" not in result.triggers
    assert all(t in ALLOWED_TRIGGERS_SET for t in result.triggers)
    assert any(o.startswith("RULE_9") for o in result.overrides)


def test_references_only_come_from_static_database(make_alert):
    alert = make_alert(
        description="Attackers stole customer data via a supply chain compromise.",
        cvss_score=9.8,
        is_actively_exploited=True,
    )
    result = ComplianceRuleEngine().validate(alert, ["§99 Invented Law", "data_breach"])

    refs = _references(result)
    assert refs
    assert set(refs) <= ALL_REFERENCES
    for framework_refs in result.evidence.mapped_references.values():
        assert set(framework_refs) <= ALL_REFERENCES


def test_known_exploited_source_forces_active_exploitation(make_alert):
    alert = make_alert(source_id="cisa-kev", cvss_score=None)
    result = ComplianceRuleEngine().validate(alert, [])

    assert "active_exploitation" in result.triggers
    assert result.compliance.nis2.relevant == Relevance.YES
    assert result.compliance.nis2.reporting_required is True
    assert "§32 BSIG" in result.compliance.nis2.references


def test_critical_exploited_adds_critical_and_vuln_management(make_alert):
    alert = make_alert(cvss_score=9.6, is_actively_exploited=True)
    result = ComplianceRuleEngine().validate(alert, [], score=40)

    for t in ("active_exploitation", "critical_vulnerability", "vulnerability_management", "patch_management", "cve"):
        assert t in result.triggers
    # 70 for exploitation first, then 80 for CVSS >= 9
    assert result.score == 80
    assert any(o.startswith("RULE_4") for o in result.overrides)
    assert any(o.startswith("RULE_5") for o in result.overrides)


def test_score_not_lowered_by_floors(make_alert):
    alert = make_alert(cvss_score=9.6, is_actively_exploited=True)
    assert ComplianceRuleEngine().validate(alert, [], score=92).score == 92


def test_non_threat_score_cap(make_alert):
    alert = make_alert(alert_type=AlertType.GUIDANCE, cvss_score=None)
    result = ComplianceRuleEngine().validate(alert, [], score=75, score_reasoning="base")
    assert result.score == 60
    assert "capped at 60" in result.score_reasoning


def test_keyword_rules_and_ics_warning(make_alert):
    alert = make_alert(
        title="Siemens SIMATIC flaw",
        description="Malicious npm package leaks personal data.",
        affected_vendors=["Siemens"],
        cvss_score=7.5,
    )
    result = ComplianceRuleEngine().validate(alert, [])

    assert "pii_exposure" in result.triggers
    assert "supply_chain" in result.triggers
    assert "critical_vulnerability" in result.triggers
    assert any("ICS/OT" in w for w in result.warnings)


def test_evidence_records_trigger_provenance(make_alert):
    alert = make_alert(source_id="cisa-kev", cvss_score=None)
    result = ComplianceRuleEngine().validate(alert, ["data_breach"])

    by_trigger = {e.trigger: e.source for e in result.evidence.evidence}
    assert by_trigger["data_breach"] == "ai"
    assert by_trigger["active_exploitation"] == "rule"
    assert result.evidence.policy_version == POLICY_VERSION


def test_no_triggers_means_nis2_not_relevant(make_alert):
    alert = make_alert(description="Quarterly newsletter.", cvss_score=None, title="Newsletter")
    result = ComplianceRuleEngine().validate(alert, [])

    assert result.triggers == []
    assert result.compliance.nis2.relevant == Relevance.NO
    assert result.compliance.gdpr is None
