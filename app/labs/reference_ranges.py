from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class ReferenceRange:
    unit: str
    healthy: str
    transplant: str
    context: str
    concern_high: Optional[float] = None
    concern_low: Optional[float] = None


TRANSPLANT_RANGES: Mapping[str, ReferenceRange] = MappingProxyType({
    "Creatinine": ReferenceRange(
        unit="mg/dL",
        healthy="0.6-1.2",
        transplant="1.0-1.8 (stable graft)",
        concern_high=2.0,
        context=(
            "Post-transplant creatinine depends on donor kidney quality, time since transplant, and "
            "immunosuppressant levels. A stable creatinine, even if above 'normal', is often more "
            "important than the absolute number."
        ),
    ),
    "eGFR": ReferenceRange(
        unit="mL/min/1.73m²",
        healthy=">90",
        transplant="30-70 (common functioning graft)",
        concern_low=30,
        context=(
            "Most transplanted kidneys don't achieve eGFR >90. 50-60 can be perfectly stable for years. "
            "Trend over months matters far more than any single reading."
        ),
    ),
    "Potassium": ReferenceRange(
        unit="mmol/L",
        healthy="3.5-5.0",
        transplant="3.5-5.2",
        concern_high=5.5,
        context=(
            "Tacrolimus and calcineurin inhibitors commonly raise potassium. Mildly elevated levels "
            "(5.0-5.3) are frequent in transplant patients."
        ),
    ),
    "BUN": ReferenceRange(
        unit="mg/dL",
        healthy="7-20",
        transplant="10-30",
        concern_high=35,
        context=(
            "BUN rises with dehydration, high-protein diet, or reduced graft function. Less specific "
            "than creatinine but useful as a supporting indicator."
        ),
    ),
    "Tacrolimus Level": ReferenceRange(
        unit="ng/mL",
        healthy="N/A",
        transplant="5-12 (varies by time post-transplant)",
        concern_high=15,
        context=(
            "Most common anti-rejection drug. Too high risks kidney toxicity; too low risks rejection. "
            "Target ranges decrease over time."
        ),
    ),
    "Phosphorus": ReferenceRange(
        unit="mg/dL",
        healthy="2.5-4.5",
        transplant="2.0-4.5",
        concern_low=1.5,
        context="A new transplant often 'wastes' phosphorus due to residual parathyroid hormone elevation.",
    ),
    "Hemoglobin": ReferenceRange(
        unit="g/dL",
        healthy="12-17",
        transplant="10-15",
        concern_low=9,
        context=(
            "Anemia is common early post-transplant from medications or residual CKD effects. "
            "Usually improves over 6-12 months."
        ),
    ),
    "Albumin": ReferenceRange(
        unit="g/dL",
        healthy="3.5-5.5",
        transplant="3.5-5.5",
        concern_low=3.0,
        context="Low albumin can indicate poor nutrition, inflammation, or protein loss.",
    ),
    "Calcium": ReferenceRange(
        unit="mg/dL",
        healthy="8.5-10.5",
        transplant="8.5-10.5",
        concern_high=11.0,
        concern_low=7.5,
        context=(
            "Calcium levels can be affected by parathyroid hormone changes common after transplant. "
            "Persistent elevation may need evaluation."
        ),
    ),
    "Magnesium": ReferenceRange(
        unit="mg/dL",
        healthy="1.7-2.2",
        transplant="1.5-2.2",
        concern_low=1.3,
        context=(
            "Tacrolimus and other calcineurin inhibitors commonly cause magnesium wasting. "
            "Supplementation is often needed."
        ),
    ),
    "Sodium": ReferenceRange(
        unit="mmol/L",
        healthy="136-145",
        transplant="136-145",
        concern_high=148,
        concern_low=130,
        context=(
            "Sodium levels reflect fluid balance. Mild abnormalities are common and often relate to "
            "hydration status."
        ),
    ),
    "Chloride": ReferenceRange(
        unit="mmol/L",
        healthy="98-106",
        transplant="98-106",
        concern_high=110,
        concern_low=95,
        context="Usually changes alongside sodium. Helps assess acid-base balance.",
    ),
    "CO2 (Bicarbonate)": ReferenceRange(
        unit="mmol/L",
        healthy="23-29",
        transplant="22-29",
        concern_low=18,
        context=(
            "Low bicarbonate (metabolic acidosis) can occur with reduced kidney function. Mild "
            "decreases are common in transplant patients."
        ),
    ),
    "Glucose (Fasting)": ReferenceRange(
        unit="mg/dL",
        healthy="70-100",
        transplant="70-130",
        concern_high=200,
        context=(
            "Post-transplant diabetes (PTDM) is common due to steroid and tacrolimus use. "
            "Blood sugar monitoring is important."
        ),
    ),
    "WBC": ReferenceRange(
        unit="x10³/µL",
        healthy="4.5-11.0",
        transplant="3.5-11.0",
        concern_low=3.0,
        concern_high=15.0,
        context=(
            "Immunosuppressants like mycophenolate can lower white blood cell counts. "
            "Low WBC increases infection risk."
        ),
    ),
    "Uric Acid": ReferenceRange(
        unit="mg/dL",
        healthy="3.0-7.0",
        transplant="3.0-8.5",
        concern_high=9.0,
        context=(
            "Elevated uric acid is common after transplant due to calcineurin inhibitors and reduced "
            "kidney clearance. May increase gout risk."
        ),
    ),
    "ALT": ReferenceRange(
        unit="U/L",
        healthy="7-56",
        transplant="7-56",
        concern_high=100,
        context="Liver enzyme. Monitored because some immunosuppressants can affect liver function.",
    ),
    "AST": ReferenceRange(
        unit="U/L",
        healthy="10-40",
        transplant="10-40",
        concern_high=100,
        context="Liver enzyme often checked alongside ALT. Elevation may warrant medication review.",
    ),
    "Platelets": ReferenceRange(
        unit="x10³/µL",
        healthy="150-400",
        transplant="150-400",
        concern_low=100,
        context="Low platelets can occur with certain medications. Usually stable in transplant patients.",
    ),
})


def get_range(name: str) -> Optional[ReferenceRange]:
    return TRANSPLANT_RANGES.get(name)
