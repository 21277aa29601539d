"""
Upload Service - Per-domain upload flows

Each flow runs: decode -> parse CSV -> build request -> predict ->
recommend (best effort) -> persist (best effort, diabetes only).

Results are plain ``{"success": bool, ...}`` envelopes so the HTTP layer
can return them as-is. Input, network and API errors end the flow with
``success: False``; recommendation and persistence failures are logged and
the flow still succeeds.
"""
import csv
import io
from typing import Any, Dict, List, Optional

from caresight.core.ingestion import (
    Demographics,
    build_cohort_payload,
    decode_upload,
    extract_cardiovascular,
    extract_maternal,
    extract_maternal_series,
    read_csv_text,
)
from caresight.core.llm import RecommendationClient, extract_risk_factors
from caresight.core.prediction import (
    CardiovascularPrediction,
    DiabetesAnalysis,
    MaternalPrediction,
    PredictionClient,
    parse_diabetes_response,
)
from caresight.core.storage import PatientInput, PatientStore, ReportInput
from caresight.utils import (
    get_logger,
    CareSightError,
    InputError,
    PersistenceError,
    RecommendationError,
)

logger = get_logger(__name__)

EXPORT_COLUMNS = ["name", "age", "condition", "riskScore", "riskLevel", "lastVisit"]


def _failure(error: Exception) -> Dict[str, Any]:
    if isinstance(error, CareSightError):
        return {"success": False, "error": error.message, "code": error.code}
    return {
        "success": False,
        "error": str(error) or "Unknown error occurred",
        "code": "INTERNAL_ERROR",
    }


class UploadService:
    """
    Orchestrates the maternal, cardiovascular and diabetes upload flows.

    Collaborators are injected so tests can swap the HTTP transport, the
    LLM and the storage backend.
    """

    def __init__(
        self,
        prediction_client: PredictionClient,
        recommendation_client: RecommendationClient,
        patient_store: PatientStore
    ):
        self.predictions = prediction_client
        self.recommendations = recommendation_client
        self.store = patient_store

    # ── Maternal ────────────────────────────────────────────────────────

    async def process_maternal(
        self,
        filename: Optional[str],
        content: Optional[bytes],
        series: bool = False
    ) -> Dict[str, Any]:
        try:
            table = read_csv_text(decode_upload(filename, content))
            logger.info(f"Maternal upload parsed: {len(table)} row(s), series={series}")

            if series:
                items = extract_maternal_series(table)
                raw_predictions = await self.predictions.predict_maternal_series(
                    [item.data for item in items]
                )
                series_out = [
                    {**item.to_dict(), "prediction": raw}
                    for item, raw in zip(items, raw_predictions)
                ]
                record, raw_prediction = items[0].data, raw_predictions[0]
            else:
                series_out = None
                record = extract_maternal(table)
                raw_prediction = await self.predictions.predict_maternal(record)

            prediction = MaternalPrediction.from_api(raw_prediction)
            logger.info(f"Maternal prediction: {prediction.prediction}")
        except Exception as e:
            logger.error(f"Maternal upload failed: {e}")
            return _failure(e)

        recommendations = None
        try:
            recommendations = await self.recommendations.maternal_recommendations(record, prediction)
        except RecommendationError as e:
            logger.error(f"Maternal recommendations unavailable: {e.message}")

        result = {
            "success": True,
            "data": record,
            "prediction": raw_prediction,
            "recommendations": recommendations,
        }
        if series_out is not None:
            result["series"] = series_out
        return result

    # ── Cardiovascular ──────────────────────────────────────────────────

    async def process_cardiovascular(
        self,
        filename: Optional[str],
        content: Optional[bytes]
    ) -> Dict[str, Any]:
        try:
            table = read_csv_text(decode_upload(filename, content))
            patients = extract_cardiovascular(table)
            logger.info(f"Cardiovascular upload parsed: {len(patients)} patient(s)")

            raw_predictions = await self.predictions.predict_cardiovascular(patients)
            prediction = CardiovascularPrediction.from_api(raw_predictions)
            logger.info(
                f"Cardiovascular predictions received for "
                f"{len(prediction.patient_predictions)} patient(s)"
            )
        except Exception as e:
            logger.error(f"Cardiovascular upload failed: {e}")
            return _failure(e)

        recommendations = None
        try:
            recommendations = await self.recommendations.cardiovascular_recommendations(
                patients, prediction
            )
        except RecommendationError as e:
            logger.error(f"Cardiovascular recommendations unavailable: {e.message}")

        return {
            "success": True,
            "data": patients,
            "predictions": raw_predictions,
            "recommendations": recommendations,
        }

    # ── Diabetes ────────────────────────────────────────────────────────

    async def process_diabetes(
        self,
        filename: Optional[str],
        content: Optional[bytes],
        demographics: Demographics,
        selected_horizon: str = "90d"
    ) -> Dict[str, Any]:
        try:
            if not str(demographics.name or "").strip():
                raise InputError("Patient name is required", fields=["name"])

            # Stage 1-2: read and parse
            table = read_csv_text(decode_upload(filename, content))
            logger.info(f"Diabetes upload parsed: {len(table)} row(s)")

            # Stage 3: build payload
            payload = build_cohort_payload(table.headers, table.rows, demographics)
            patient_count = len(payload["patients"])
            logger.info(
                f"Diabetes payload built: {patient_count} patient(s), "
                f"cohort={self.predictions.is_cohort(payload)}"
            )

            # Stage 4: predict
            raw_response = await self.predictions.predict_glucose(payload)
        except Exception as e:
            logger.error(f"Diabetes upload failed: {e}")
            return _failure(e)

        # Stage 5: reshape for charts
        prediction = parse_diabetes_response(raw_response)
        analysis = DiabetesAnalysis(raw_response)
        focus = analysis.patient_analyses[0] if analysis.patient_analyses else analysis

        # Stage 6: narrative (best effort)
        insights = None
        try:
            insights = await self.recommendations.diabetes_insights(
                focus, demographics, selected_horizon
            )
        except RecommendationError as e:
            logger.error(f"Diabetes insights unavailable: {e.message}")

        risk_factors = extract_risk_factors(focus, selected_horizon)

        # Stage 7: persist (best effort)
        stored_patient_id = None
        report_id = None
        try:
            patient = self.store.save_patient(PatientInput(**demographics.to_dict()))
            report = self.store.add_report_to_patient(
                patient.id,
                ReportInput(
                    glucose_data=payload["patients"][0]["data"] if payload["patients"] else [],
                    risk_factors=risk_factors,
                    ai_explanation=insights,
                    raw_api_response=raw_response,
                    payload=payload,
                ),
            )
            stored_patient_id = patient.id
            report_id = report.id if report else None
        except PersistenceError as e:
            logger.error(f"Failed to save patient data: {e.message}")

        return {
            "success": True,
            "payload": payload,
            "prediction": raw_response,
            "parsed": prediction.to_parsed_data().to_dict() if prediction else None,
            "risk_summary": prediction.get_risk_summary() if prediction else None,
            "risk_factors": risk_factors,
            "insights": insights,
            "patient_id": stored_patient_id,
            "report_id": report_id,
        }

    # ── Export ──────────────────────────────────────────────────────────

    @staticmethod
    def export_patients(patients: List[Dict[str, Any]], condition: str) -> Dict[str, Any]:
        """Patient list rows as CSV text for download."""
        if not patients:
            return {"success": False, "error": "No patient data to export", "code": "INPUT_ERROR"}

        buffer = io.StringIO()
        writer = csv.DictWriter(
            buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore", lineterminator="\n"
        )
        writer.writeheader()
        for patient in patients:
            writer.writerow({col: "" if patient.get(col) is None else patient.get(col) for col in EXPORT_COLUMNS})

        return {
            "success": True,
            "data": buffer.getvalue().rstrip("\n"),
            "filename": f"caresight-{condition}-patients.csv",
        }
