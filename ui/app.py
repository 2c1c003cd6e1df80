# ui/app.py

import streamlit as st
import requests
import pandas as pd
import uuid
import os

# --- Configuration ---
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
st.set_page_config(page_title="ClickNPS Webhooks", layout="wide")
st.title("ClickNPS Webhooks - Operator Console")

# --- Helper Functions to Interact with API ---

def handle_response(response, success_status=200):
    """Checks response status and returns JSON or None."""
    if response.status_code == success_status:
        try:
            # Handle 204 No Content specifically
            if success_status == 204:
                return True
            return response.json()
        except requests.exceptions.JSONDecodeError:
            st.error("Failed to decode JSON response from API.")
            return None
    else:
        try:
            detail = response.json().get("detail", "Unknown error")
        except requests.exceptions.JSONDecodeError:
            detail = f"Unknown error (Status code: {response.status_code})"
        st.error(f"API Error ({response.status_code}): {detail}")
        return None

def valid_business_id(business_id):
    try:
        uuid.UUID(business_id)
        return True
    except ValueError:
        st.error("Invalid Business ID format. Please enter a valid UUID.")
        return False

def create_business(name, webhook_url=None):
    """Creates a new business, optionally with a webhook URL."""
    payload = {"name": name}
    if webhook_url:
        payload["webhook_url"] = webhook_url
    try:
        response = requests.post(f"{API_BASE_URL}/businesses/", json=payload)
        return handle_response(response, success_status=201)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error creating business: {e}")
        return None

def get_webhook_settings(business_id):
    try:
        response = requests.get(f"{API_BASE_URL}/businesses/{business_id}/webhook")
        return handle_response(response)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error fetching webhook settings: {e}")
        return None

def save_webhook_settings(business_id, webhook_url, webhook_secret=None):
    """Saves the webhook URL; the API generates a secret if none is given."""
    payload = {"webhook_url": webhook_url}
    if webhook_secret:
        payload["webhook_secret"] = webhook_secret
    try:
        response = requests.put(f"{API_BASE_URL}/businesses/{business_id}/webhook", json=payload)
        return handle_response(response)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error saving webhook settings: {e}")
        return None

def disable_webhook(business_id):
    try:
        response = requests.delete(f"{API_BASE_URL}/businesses/{business_id}/webhook")
        return handle_response(response, success_status=204)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error disabling webhook: {e}")
        return None

def send_test_webhook(business_id):
    try:
        response = requests.post(f"{API_BASE_URL}/businesses/{business_id}/webhook/test")
        return handle_response(response)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error sending test webhook: {e}")
        return None

def get_recent_deliveries(business_id, limit=10):
    """Fetches the most recent webhook deliveries for a business."""
    try:
        response = requests.get(
            f"{API_BASE_URL}/businesses/{business_id}/webhook/deliveries",
            params={"limit": limit},
        )
        return handle_response(response)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error fetching deliveries: {e}")
        return None

# --- Streamlit UI Layout ---

tab1, tab2 = st.tabs(["Webhook Settings", "Recent Deliveries"])

with tab1:
    st.header("Webhook Settings")

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Create Business")
        with st.form("create_business_form"):
            new_name = st.text_input("Business name*")
            new_url = st.text_input("Webhook URL (Optional)")
            submitted_create = st.form_submit_button("Create Business")

            if submitted_create:
                if not new_name:
                    st.warning("Business name is required.")
                else:
                    result = create_business(new_name, new_url or None)
                    if result:
                        st.success(f"Business created! ID: {result.get('id')}")

    with col2:
        st.subheader("Configure Webhook")
        business_id = st.text_input("Business ID", key="settings_business_id", help="Enter the full UUID.")

        if business_id and valid_business_id(business_id):
            settings = get_webhook_settings(business_id)
            if settings:
                with st.form("webhook_settings_form"):
                    webhook_url = st.text_input("Webhook URL*", value=settings.get("webhook_url") or "")
                    webhook_secret = st.text_input(
                        "Webhook Secret",
                        value=settings.get("webhook_secret") or "",
                        type="password",
                        help="Leave empty to generate one.",
                    )
                    submitted_save = st.form_submit_button("Save Settings")

                    if submitted_save:
                        if not webhook_url.strip():
                            st.warning("Webhook URL is required.")
                        elif save_webhook_settings(business_id, webhook_url.strip(), webhook_secret.strip() or None):
                            st.success("Webhook settings saved.")

                c1, c2 = st.columns(2)
                if c1.button("Send Test Webhook"):
                    result = send_test_webhook(business_id)
                    if result:
                        if result.get("success"):
                            st.success(f"Test webhook delivered (HTTP {result.get('statusCode')}).")
                        else:
                            st.error(f"Test webhook failed (status: {result.get('statusCode') or 'no response'}).")
                        if result.get("responseBody"):
                            st.code(result["responseBody"])
                if c2.button("Disable Webhook", type="primary"):
                    if disable_webhook(business_id):
                        st.success("Webhook disabled.")


with tab2:
    st.header("Recent Deliveries")

    deliveries_business_id = st.text_input("Business ID", key="deliveries_business_id", help="Enter the UUID of the business.")
    limit = st.number_input("Limit", min_value=1, max_value=100, value=10, key="deliveries_limit")

    if st.button("Fetch Deliveries", key="fetch_deliveries"):
        if deliveries_business_id and valid_business_id(deliveries_business_id):
            deliveries = get_recent_deliveries(deliveries_business_id, limit)
            if deliveries is not None: # API call might return empty list successfully
                if deliveries:
                    df = pd.DataFrame(deliveries)
                    for column in ("created_at", "last_attempt_at", "next_attempt_at"):
                        df[column] = pd.to_datetime(df[column]).dt.strftime('%Y-%m-%d %H:%M:%S UTC')
                    st.dataframe(
                        df[['created_at', 'survey_id', 'subject_id', 'score', 'status', 'attempts',
                            'response_status_code', 'last_attempt_at', 'next_attempt_at']],
                        use_container_width=True,
                    )
                else:
                    st.info("No webhook deliveries yet for this business.")
        elif not deliveries_business_id:
            st.warning("Please enter a Business ID.")
