"""
Label vocabularies for the reference datasets.
"""

# The 41 CUAD clause categories.
CUAD_CATEGORIES: tuple[str, ...] = (
    "Document Name",
    "Parties",
    "Agreement Date",
    "Effective Date",
    "Expiration Date",
    "Renewal Term",
    "Notice Period To Terminate Renewal",
    "Governing Law",
    "Most Favored Nation",
    "Non-Compete",
    "Exclusivity",
    "No-Solicit Of Customers",
    "Competitive Restriction Exception",
    "No-Solicit Of Employees",
    "Non-Disparagement",
    "Termination For Convenience",
    "Rofr/Rofo/Rofn",
    "Change Of Control",
    "Anti-Assignment",
    "Revenue/Profit Sharing",
    "Price Restrictions",
    "Minimum Commitment",
    "Volume Restriction",
    "Ip Ownership Assignment",
    "Joint Ip Ownership",
    "License Grant",
    "Non-Transferable License",
    "Affiliate License-Licensor",
    "Affiliate License-Licensee",
    "Unlimited/All-You-Can-Eat-License",
    "Irrevocable Or Perpetual License",
    "Source Code Escrow",
    "Post-Termination Services",
    "Audit Rights",
    "Uncapped Liability",
    "Cap On Liability",
    "Liquidated Damages",
    "Warranty Duration",
    "Insurance",
    "Covenant Not To Sue",
    "Third Party Beneficiary",
)

# ContractNLI hypothesis definitions, keyed by hypothesis number.
NLI_HYPOTHESES: dict[int, str] = {
    1: "All Confidential Information shall be expressly identified by the Disclosing Party.",
    2: "Confidential Information shall only include technical information.",
    3: "All Confidential Information shall be returned to the Disclosing Party upon termination of the Agreement.",
    4: "Confidential Information may be acquired independently.",
    5: "Confidential Information may be disclosed to employees.",
    6: "Confidential Information may be shared with third-parties with permission.",
    7: "Confidential Information may be disclosed pursuant to law.",
    8: "Receiving Party shall not disclose the fact that Agreement was agreed.",
    9: "Receiving Party shall not disclose the terms of Agreement.",
    10: "Receiving Party shall not solicit Disclosing Party's employees.",
    11: "Receiving Party shall not solicit Disclosing Party's customers.",
    12: "Receiving Party shall not use Confidential Information for competing business.",
    13: "Agreement shall be valid for some period after termination.",
    14: "Agreement shall not grant Receiving Party any right to Confidential Information.",
    15: "Receiving Party may create derivative works from Confidential Information.",
    16: "Receiving Party may retain some Confidential Information.",
    17: "Some obligations of Agreement may survive termination.",
}
